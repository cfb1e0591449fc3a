"""
Настройка логгера для приложения.

Все модули пишут в логгер "qms" или его дочерние логгеры (qms.training, qms.email ...),
полученные через get_logger(). Обработчики висят только на корневом "qms".
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path

from qms.core.config import settings

_level = getattr(logging, settings.log_level.upper(), logging.INFO)

logger = logging.getLogger("qms")
logger.setLevel(_level)
# uvicorn настраивает root logging через dictConfig, поэтому не полагаемся на propagation.
logger.propagate = False
logger.disabled = False

formatter = logging.Formatter(
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

handler = logging.StreamHandler(sys.stdout)
handler.setLevel(logging.DEBUG)
handler.setFormatter(formatter)

_handlers: list[logging.Handler] = [handler]
_log_file_path: Path | None = None

# Файл с timestamp в названии: <log_dir>/qms_YYYYMMDD_HHMMSS.log
if settings.log_to_file:
    _logs_dir = Path(settings.log_dir)
    _logs_dir.mkdir(parents=True, exist_ok=True)
    _log_file_path = _logs_dir / f"qms_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    file_handler = logging.FileHandler(_log_file_path, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    _handlers.append(file_handler)

if not logger.handlers:
    for h in _handlers:
        logger.addHandler(h)

# Логи uvicorn/fastapi пишем туда же и с тем же уровнем.
for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
    ext_logger = logging.getLogger(name)
    ext_logger.setLevel(_level)
    ext_logger.disabled = False
    if not ext_logger.handlers:
        for h in _handlers:
            ext_logger.addHandler(h)


def get_logger(name: str) -> logging.Logger:
    """Возвращает дочерний логгер qms.<name>."""
    return logger.getChild(name)


logger.info(
    "Logging configured "
    f"(settings.log_level={settings.log_level!r}, "
    f"qms_level={logging.getLevelName(logger.level)}, "
    f"log_file={str(_log_file_path) if _log_file_path else None})"
)
