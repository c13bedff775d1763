"""`.env` adapter.

Purpose
-------
Read the nearest ``.env`` file so its variables can back ``${NAME}``
placeholders and the ``DBMAN_DEFAULT_*`` fallbacks, exactly like variables
exported in the shell.

Contents
--------
* :class:`DefaultDotEnvLoader` – finds and parses the first ``.env`` walking
  upwards from a start directory.
* Helper functions (`_iter_candidates`, `_parse_dotenv`, `_strip_quotes`).

System Role
-----------
:func:`dbman.adapters.env.default.capture_environment` layers the real process
environment over the values returned here.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from ...domain.errors import InvalidFormat
from ...observability import log_debug, log_error


class DefaultDotEnvLoader:
    """Load a dotenv file into a flat ``{NAME: value}`` dictionary."""

    def __init__(self) -> None:
        self.last_loaded_path: str | None = None

    def load(self, start_dir: str | None = None) -> dict[str, str]:
        """Return the variables of the first dotenv file found from *start_dir* upwards.

        Side Effects
        ------------
        Sets :attr:`last_loaded_path` and emits structured logging events.

        Examples
        --------
        >>> from tempfile import TemporaryDirectory
        >>> tmp = TemporaryDirectory()
        >>> path = Path(tmp.name) / '.env'
        >>> _ = path.write_text('PROD_USER=admin\\nexport PROD_PASSWORD="s3cret"\\n', encoding='utf-8')
        >>> loader = DefaultDotEnvLoader()
        >>> loader.load(tmp.name)
        {'PROD_USER': 'admin', 'PROD_PASSWORD': 's3cret'}
        >>> loader.last_loaded_path == str(path)
        True
        >>> tmp.cleanup()
        """

        self.last_loaded_path = None
        for candidate in _iter_candidates(start_dir):
            if candidate.is_file():
                self.last_loaded_path = str(candidate)
                data = _parse_dotenv(candidate)
                log_debug("dotenv_loaded", layer="dotenv", path=self.last_loaded_path, keys=len(data))
                return data
        log_debug("dotenv_not_found", layer="dotenv", path=None)
        return {}


def _iter_candidates(start_dir: str | None) -> Iterable[Path]:
    """Yield candidate dotenv paths walking from ``start_dir`` to filesystem root."""

    base = Path(start_dir) if start_dir else Path.cwd()
    for directory in [base, *base.parents]:
        yield directory / ".env"


def _parse_dotenv(path: Path) -> dict[str, str]:
    """Parse ``path``, raising ``InvalidFormat`` on malformed lines."""

    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        log_error("dotenv_invalid_encoding", layer="dotenv", path=str(path), error=str(exc))
        raise InvalidFormat(f"{path} is not valid UTF-8: {exc}") from exc

    result: dict[str, str] = {}
    for line_number, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        if "=" not in line:
            log_error("dotenv_invalid_line", layer="dotenv", path=str(path), line=line_number)
            raise InvalidFormat(f"Malformed line {line_number} in {path}")
        key, value = line.split("=", 1)
        result[key.strip()] = _strip_quotes(value.strip())
    return result


def _strip_quotes(value: str) -> str:
    """Trim surrounding quotes and inline comments from ``value``.

    Examples
    --------
    >>> _strip_quotes('"token"')
    'token'
    >>> _strip_quotes("value # comment")
    'value'
    """

    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    if value.startswith("#"):
        return ""
    if " #" in value:
        return value.split(" #", 1)[0].strip()
    return value
