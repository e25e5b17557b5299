"""Field limits for record validation."""

import re

TITLE_MAX_LENGTH = 500
AUTHOR_MAX_LENGTH = 500
PUBLISHER_MAX_LENGTH = 500
DESCRIPTION_MAX_LENGTH = 10000
COLLECTION_NAME_MAX_LENGTH = 100
LANGUAGE_MIN_LENGTH = 2
LANGUAGE_MAX_LENGTH = 10
MAX_AUTHORS = 10
MAX_CATEGORIES = 20
MIN_PAGE_COUNT = 1
MAX_PAGE_COUNT = 10000
MIN_AVERAGE_RATING = 0
MAX_AVERAGE_RATING = 5
MIN_USER_RATING = 1
MAX_USER_RATING = 5

ISBN_10 = re.compile(r"^\d{9}[\dX]$")
ISBN_13 = re.compile(r"^\d{13}$")
