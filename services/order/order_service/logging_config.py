import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """ルートロガーを設定する。既にハンドラがあれば何もしない。"""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # httpx はリクエストごとに INFO を出すので抑える
    logging.getLogger("httpx").setLevel(logging.WARNING)
