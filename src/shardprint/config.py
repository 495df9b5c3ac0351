import os


class ShardPrintConfig:

    def __init__(self):
        self.enable_logging: bool = (
            os.environ.get("SHARDPRINT_ENABLE_LOGGING", "0") == "1"
        )
        self.logs_dir: str = os.environ.get("SHARDPRINT_LOGS_DIR", "./logs")
        self.writer_rank: int = int(os.environ.get("SHARDPRINT_WRITER_RANK", "0"))


config = ShardPrintConfig()
