import os

_DEFAULT_MODELS = {
    "local": "sentence-transformers/all-MiniLM-L6-v2",
    "openai": "text-embedding-3-small",
}
_DEFAULT_DIMS = {
    "local": "384",
    "openai": "1536",
}


class Embedding:
    def __init__(self, config: dict | None = None) -> None:
        cfg = (config or {}).get("recall", {}).get("embedding", {})

        backend = str(cfg.get("backend", os.getenv("EMB_BACKEND", "local"))).strip().lower()
        if backend not in _DEFAULT_MODELS:
            raise ValueError(f"Unknown EMB_BACKEND '{backend}' (expected one of {', '.join(_DEFAULT_MODELS)})")
        self.BACKEND: str = backend

        self.EMB_MODEL_ID: str = str(cfg.get("emb_model_id", os.getenv("EMB_MODEL_ID", _DEFAULT_MODELS[backend])))
        self.EMB_DIM: int = int(cfg.get("emb_dim", os.getenv("EMB_DIM", _DEFAULT_DIMS[backend])))
        self.BATCH_SIZE: int = int(cfg.get("batch_size", os.getenv("EMB_BATCH_SIZE", "32")))
        self.QUERY_CACHE_SIZE: int = int(cfg.get("query_cache_size", os.getenv("EMB_QUERY_CACHE_SIZE", "256")))

        key_env = str(cfg.get("openai_key_env", "OPENAI_API_KEY"))
        self.OPENAI_API_KEY: str | None = os.getenv(key_env)
        self.OPENAI_BASE_URL: str | None = cfg.get("openai_base_url") or os.getenv("OPENAI_BASE_URL")

        if self.BACKEND == "openai" and not self.OPENAI_API_KEY:
            raise ValueError(f"Missing environment variables: {key_env}")
