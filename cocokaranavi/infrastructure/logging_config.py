"""ログ設定"""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - [%(backend)s] - %(levelname)s - %(message)s"


class BackendFilter(logging.Filter):
    """全レコードに使用中のストレージ名（local / firestore / supabase）を付ける"""

    def __init__(self, backend: str):
        super().__init__()
        self.backend = backend

    def filter(self, record: logging.LogRecord) -> bool:
        record.backend = self.backend
        return True


def build_handler(backend: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(BackendFilter(backend))
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def setup_logging(debug: bool = False, backend: str = "local") -> None:
    """
    アプリ全体のログを設定する

    debug=True なら DEBUG、それ以外は INFO。出力先は標準出力。
    どのストレージで動いているかを各行に出す。
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        handlers=[build_handler(backend)],
    )
