# planner/core/logging_config.py
# Logging centralisé : logger générique, logger d'erreurs (rotation quotidienne) et journal JSON des données lourdes.

import json
import logging
import logging.handlers
import re
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from bson import ObjectId

from planner.core.settings import get_settings

_DATE_IN_NAME = re.compile(r"(\d{4}-\d{2}-\d{2})")


class CustomJSONEncoder(json.JSONEncoder):
    """Encodeur JSON personnalisé pour gérer ObjectId et datetime."""

    def default(self, obj):
        if isinstance(obj, ObjectId):
            return str(obj)
        elif isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


class DataLogger:
    """Logger spécialisé pour les données lourdes en JSON.

    Description:
        Chaque jour a son fichier `YYYY-MM-DD-data.json`, maintenu comme un tableau JSON
        valide : on retire le `]` final, on ajoute l'entrée, on referme.
    """

    def __init__(self, logs_dir: str = "logs"):
        self.logs_dir = Path(logs_dir)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def log_data(
        self,
        calling_context: str,
        data: Dict[str, Any],
        caller_data: Optional[Dict[str, Any]] = None
    ) -> None:
        today = datetime.now().strftime("%Y-%m-%d")
        json_file = self.logs_dir / f"{today}-data.json"

        entry = json.dumps(
            {
                "datetime": datetime.now().isoformat(),
                "calling_context": calling_context,
                "caller_data": caller_data or {},
                "data": data,
            },
            cls=CustomJSONEncoder,
        )

        if not json_file.exists():
            json_file.write_text(f"[{entry}]", encoding="utf-8")
            return

        content = json_file.read_text(encoding="utf-8").rstrip()
        if content.endswith("]"):
            content = content[:-1].rstrip()
        if content.endswith("}"):
            content += ","
        elif not content:
            content = "["
        json_file.write_text(f"{content}{entry}]", encoding="utf-8")


def _rotating_handler(path: Path, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=path,
        when="midnight",
        interval=1,
        encoding="utf-8"
    )
    handler.suffix = "%Y-%m-%d"
    handler.setFormatter(formatter)
    return handler


def setup_logging() -> tuple[logging.Logger, logging.Logger, DataLogger]:
    """Configure le système de logging avec rotation quotidienne.

    Returns:
        tuple: (logger_generic, logger_errors, data_logger)
    """
    settings = get_settings()
    logs_dir = Path(settings.logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    cleanup_old_logs(logs_dir, settings.logs_retention_days)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Logger générique (INFO+)
    generic_logger = logging.getLogger("planner.generic")
    generic_logger.setLevel(logging.INFO)
    if not generic_logger.handlers:
        generic_logger.addHandler(_rotating_handler(logs_dir / "generic.log", formatter))

    # Logger erreurs (ERROR+)
    error_logger = logging.getLogger("planner.errors")
    error_logger.setLevel(logging.ERROR)
    if not error_logger.handlers:
        error_logger.addHandler(_rotating_handler(logs_dir / "errors.log", formatter))

    return generic_logger, error_logger, DataLogger(str(logs_dir))


def cleanup_old_logs(logs_dir: Path, retention_days: int = 30) -> list[Path]:
    """Supprime les fichiers de logs datés plus anciens que `retention_days`.

    Returns:
        list[Path]: Fichiers supprimés.
    """
    cutoff_str = (datetime.now() - timedelta(days=retention_days)).strftime("%Y-%m-%d")
    removed: list[Path] = []

    for pattern in ("generic.log.*", "errors.log.*", "*-data.json"):
        for file_path in logs_dir.glob(pattern):
            match = _DATE_IN_NAME.search(file_path.name)
            if match and match.group(1) < cutoff_str:
                try:
                    file_path.unlink()
                    removed.append(file_path)
                except OSError:
                    continue
    return removed


_loggers: Optional[tuple[logging.Logger, logging.Logger, DataLogger]] = None


def get_loggers() -> tuple[logging.Logger, logging.Logger, DataLogger]:
    """Retourne les loggers configurés (singleton)."""
    global _loggers
    if _loggers is None:
        _loggers = setup_logging()
    return _loggers


def extract_caller_data(caller_id: Optional[str] = None, request=None) -> Dict[str, Any]:
    """Extrait les données de l'appelant pour le logging (id, IP, user-agent)."""
    caller_data: Dict[str, Any] = {}

    if caller_id:
        caller_data["caller_id"] = caller_id

    if request is not None:
        if getattr(request, "client", None):
            caller_data["ip"] = request.client.host
        headers = getattr(request, "headers", None)
        if headers is not None:
            user_agent = headers.get("user-agent")
            if user_agent:
                caller_data["user_agent"] = user_agent

    return caller_data
