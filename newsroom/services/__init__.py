# Services package.
#
# Each module encapsulates business logic and database access for one
# aggregate:
#
#   article_service   : ArticleLifecycle, the guarded create / update /
#                       delete path for articles
#   article_query     : filtered listing, relevance search, detail reads
#   category_service  : category catalogue and the exists() lookup
#   user_service      : registration and profile management
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.
