import logging
import logging.config
import os
import re

from rich.console import Console

DEFAULT_LOG_LEVEL = "WARNING"

# Log output stays off stdout, which carries answers
STDERR_CONSOLE = Console(stderr=True)

_KEY_PARAM_RE = re.compile(r"(?i)([?&]key=)[^&\s'\"]+")
_SECRET_KV_RE = re.compile(r"(?i)\b(x-api-key|api_key|apikey|authorization)\b(['\"]?\s*[:=]\s*['\"]?)([^\s,;'\"]+)")
_BEARER_RE = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9\-._~+/]+=*")


def redact(text: str) -> str:
    """Mask API keys in URLs, headers and key/value pairs."""
    text = _KEY_PARAM_RE.sub(r"\1[redacted]", text)
    text = _BEARER_RE.sub("Bearer [redacted]", text)
    text = _SECRET_KV_RE.sub(r"\1\2[redacted]", text)
    return text


class RedactionFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact(record.getMessage())
        record.args = ()
        return True


def resolve_log_level(level: str | None = None) -> str:
    """Explicit level, else QUICKASSIST_LOG_LEVEL, else WARNING."""
    chosen = (level or os.getenv("QUICKASSIST_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper()
    if not isinstance(logging.getLevelName(chosen), int):
        return DEFAULT_LOG_LEVEL
    return chosen


def configure_logging(level: str | None = None) -> None:
    """Route all logging through a Rich handler on stderr, with secrets redacted."""
    log_level = resolve_log_level(level)
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "redact": {"()": "quickassist.logging_config.RedactionFilter"},
            },
            "formatters": {
                "rich": {"format": "%(name)s: %(message)s", "datefmt": "[%X]"},
            },
            "handlers": {
                "console": {
                    "class": "rich.logging.RichHandler",
                    "console": "ext://quickassist.logging_config.STDERR_CONSOLE",
                    "formatter": "rich",
                    "filters": ["redact"],
                    "level": log_level,
                    "rich_tracebacks": True,
                    "show_path": False,
                },
            },
            "loggers": {
                # httpx logs full request URLs (Gemini keys live in the query string)
                "httpx": {"level": "WARNING"},
                "httpcore": {"level": "WARNING"},
            },
            "root": {"handlers": ["console"], "level": log_level},
        }
    )
