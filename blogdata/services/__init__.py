# Services package.
#
# Each module exposes async functions for one aggregate:
#
#   user_service     — list / detail / create for User
#   post_service     — newest-first feed and create for Post
#   comment_service  — append-only comment creation
#   metrics_service  — cached site-wide totals
#
# Every service function takes the DataClient as its first argument and
# opens its own session through ``client.session()``; reads go through
# the client's query cache and successful writes revalidate the home page.
