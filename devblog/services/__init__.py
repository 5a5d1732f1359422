# Services package.
#
# Each module exposes a focused set of async functions that encapsulate
# business logic and database access for a single domain aggregate:
#
#   article_service  — CRUD + filtering + cache for Article, slug helpers
#   comment_service  — comments on articles, author-only edits
#   like_service     — like / unlike / toggle on (article, user) pairs
#   follow_service   — follower -> following relationships
#   tag_service      — tag CRUD and the tag-name normalizer
#   user_service     — account CRUD, password changes, profile images
#   auth_service     — email verification and password reset flows
#   upload_service   — file storage on disk plus upload metadata
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.  Failures are raised as ``devblog.exceptions``
# errors and rendered by the handlers registered in ``devblog.main``.
