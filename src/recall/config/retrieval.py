import os


class Retrieval:
    def __init__(self, config: dict | None = None) -> None:
        cfg = (config or {}).get("recall", {}).get("retrieval", {})
        self.DECAY_FACTOR: float = float(cfg.get("decay_factor", os.getenv("RECALL_DECAY_FACTOR", "0.98")))
        if not 0.0 < self.DECAY_FACTOR <= 1.0:
            raise ValueError(f"RECALL_DECAY_FACTOR must be in (0, 1], got {self.DECAY_FACTOR}")

        self.RECENT_DEFAULT_LIMIT: int = int(cfg.get("recent_default_limit", os.getenv("RECALL_RECENT_DEFAULT_LIMIT", "50")))
        self.RECENT_MAX_LIMIT: int = int(cfg.get("recent_max_limit", os.getenv("RECALL_RECENT_MAX_LIMIT", "100")))
        self.SEARCH_DEFAULT_LIMIT: int = int(cfg.get("search_default_limit", os.getenv("RECALL_SEARCH_DEFAULT_LIMIT", "10")))
        self.SEARCH_MAX_LIMIT: int = int(cfg.get("search_max_limit", os.getenv("RECALL_SEARCH_MAX_LIMIT", "50")))
        self.MIN_QUERY_CHARS: int = int(cfg.get("min_query_chars", os.getenv("RECALL_MIN_QUERY_CHARS", "3")))
        self.MAX_QUERY_CHARS: int = int(cfg.get("max_query_chars", os.getenv("RECALL_MAX_QUERY_CHARS", "1000")))

        # 0 disables the window
        self.MESSAGE_TIME_RANGE_DAYS: float = float(
            cfg.get("message_time_range_days", os.getenv("RECALL_MESSAGE_TIME_RANGE_DAYS", "30"))
        )
        self.KNOWLEDGE_MIN_SCORE: float = float(cfg.get("knowledge_min_score", os.getenv("RECALL_KNOWLEDGE_MIN_SCORE", "0.25")))
        self.MEMORY_MIN_SCORE: float = float(cfg.get("memory_min_score", os.getenv("RECALL_MEMORY_MIN_SCORE", "0.3")))
        self.MEMORY_DEDUP_THRESHOLD: float = float(
            cfg.get("memory_dedup_threshold", os.getenv("RECALL_MEMORY_DEDUP_THRESHOLD", "0.77"))
        )

        self.BACKFILL_BATCH_SIZE: int = int(cfg.get("backfill_batch_size", os.getenv("RECALL_BACKFILL_BATCH_SIZE", "50")))
        self.MAINTENANCE_INTERVAL: int = int(
            cfg.get("maintenance_interval", os.getenv("RECALL_MAINTENANCE_INTERVAL", "3600"))
        )
