from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Any

from dbaccess.strategy import get_available_dialects, get_strategy_class
from dbaccess.strategy import is_supported_dialect
from sqlalchemy.engine import make_url

__all__ = [
    'DEFAULT_BATCH_SIZE',
    'DatabaseOptions',
    'load_options',
]

DEFAULT_BATCH_SIZE = 1024

LOB_ERROR_POLICIES = ('null', 'raise')


@dataclass
class DatabaseOptions:
    """Options

    supported driver names: `postgresql`, `sqlite`

    A full SQLAlchemy `url` may be given instead of the individual parts;
    its parts fill in any field left unset. `connect_args` is passed to the
    driver's connect call as a generic property bag.

    Pool options:
    - pool_size: Number of connections a pool opens up front (default: 5)
    - pool_wait_timeout: Seconds `acquire` waits by default; None waits
      forever (default: 30)

    Connection options:
    - connect_retries: Attempts per physical connection (default: 3)
    - retry_delay: Seconds before the first retry (default: 1)
    - retry_backoff: Multiplier applied to the delay per retry (default: 1.5)

    Mapping options:
    - batch_size: Default batch granularity (default: 1024)
    - lob_errors: 'null' turns unreadable large objects into None,
      'raise' turns them into TypeConversionError (default: 'null')
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    url: str = None
    connect_args: dict[str, Any] = field(default_factory=dict)
    pool_size: int = 5
    pool_wait_timeout: float | None = 30
    connect_retries: int = 3
    retry_delay: float = 1
    retry_backoff: float = 1.5
    batch_size: int = DEFAULT_BATCH_SIZE
    lob_errors: str = 'null'

    def __post_init__(self):
        if self.url:
            self._apply_url(self.url)
        if not is_supported_dialect(self.drivername):
            available = get_available_dialects()
            raise ValueError(f'drivername must be one of: {available}')
        strategy_cls = get_strategy_class(self.drivername)
        strategy_cls.validate_options(self)
        if self.pool_size < 1:
            raise ValueError('pool_size must be at least 1')
        if self.pool_wait_timeout is not None and self.pool_wait_timeout < 0:
            raise ValueError('pool_wait_timeout cannot be negative')
        if self.connect_retries < 1:
            raise ValueError('connect_retries must be at least 1')
        if self.lob_errors not in LOB_ERROR_POLICIES:
            raise ValueError(f'lob_errors must be one of: {list(LOB_ERROR_POLICIES)}')

    def _apply_url(self, url: str) -> None:
        """Fill unset connection fields from a SQLAlchemy URL."""
        parsed = make_url(url)
        self.drivername = parsed.get_backend_name()
        self.hostname = self.hostname or parsed.host
        self.username = self.username or parsed.username
        self.password = self.password or parsed.password
        self.database = self.database or parsed.database
        self.port = self.port or parsed.port or 0

    def __repr__(self) -> str:
        masked = {f.name: getattr(self, f.name) for f in fields(self)}
        if masked['password']:
            masked['password'] = '***'
        if masked['url']:
            masked['url'] = make_url(masked['url']).render_as_string(hide_password=True)
        args = ', '.join(f'{k}={v!r}' for k, v in masked.items())
        return f'DatabaseOptions({args})'


def load_options(options: 'DatabaseOptions | Mapping[str, Any] | str | None' = None,
                 **kw: Any) -> DatabaseOptions:
    """Build DatabaseOptions from any of the accepted forms.

    Args:
        options: Can be:
                - DatabaseOptions object
                - Dictionary of options
                - SQLAlchemy URL string
                - None (options given as keyword arguments)
        **kw: Additional keyword arguments to override options

    Returns
        Validated DatabaseOptions
    """
    if options is None:
        return DatabaseOptions(**kw)
    if isinstance(options, DatabaseOptions):
        return replace(options, **kw) if kw else options
    if isinstance(options, Mapping):
        return DatabaseOptions(**{**options, **kw})
    if isinstance(options, str):
        return DatabaseOptions(url=options, **kw)
    raise TypeError(f'Cannot load options from {type(options).__name__}')
