"""Application configuration"""

import logging
from dotenv import load_dotenv

from .loader import load_raw_config
from .storage import Storage
from .embedding import Embedding
from .retrieval import Retrieval

load_dotenv()

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s]: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logging.basicConfig(format=LOG_FORMAT, datefmt=DATE_FORMAT, level=logging.INFO)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("sentence_transformers").setLevel(logging.WARNING)

_RAW_CONFIG = load_raw_config()

storage = Storage(_RAW_CONFIG)
embedding = Embedding(_RAW_CONFIG)
retrieval = Retrieval(_RAW_CONFIG)


class Config:
    storage = storage
    embedding = embedding
    retrieval = retrieval


__all__ = ["storage", "embedding", "retrieval", "Config"]
