"""
Logging del estudio: consola para seguir las corridas y un archivo rotativo.

Los modulos del motor (`estratos.generator`, `estratos.compositor`,
`estratos.png`) usan `logging.getLogger` directamente y heredan esta
configuracion en cuanto la CLI o la aplicacion web llaman a `get_logger`.
"""

import logging
from logging.config import dictConfig
from pathlib import Path

LOG_DIR = Path("logs")
LOG_FILE = LOG_DIR / "estratos.log"

_DICT_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        },
        # Los workers registran desde hilos distintos; el nombre del hilo identifica al worker.
        "worker": {
            "format": "%(asctime)s [%(levelname)s] %(name)s (%(threadName)s): %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "level": "INFO",
        },
        "file": {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "worker",
            "filename": str(LOG_FILE),
            "maxBytes": 5 * 1024 * 1024,
            "backupCount": 3,
            "encoding": "utf-8",
            "level": "DEBUG",
        },
    },
    "loggers": {
        "estratos": {"level": "DEBUG"},
        # Pillow anuncia cada chunk PNG en DEBUG.
        "PIL": {"level": "WARNING"},
    },
    "root": {
        "level": "INFO",
        "handlers": ["console", "file"],
    },
}

_configured = False


def get_logger(name: str = "estratos") -> logging.Logger:
    global _configured
    if not _configured:
        LOG_DIR.mkdir(exist_ok=True)
        dictConfig(_DICT_CONFIG)
        _configured = True
    return logging.getLogger(name)
