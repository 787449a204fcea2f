import logging

logger = logging.getLogger("upload_api")
