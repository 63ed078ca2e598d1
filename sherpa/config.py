from contextlib import contextmanager
from typing import Literal

from pydantic._internal._model_construction import ModelMetaclass
from pydantic.fields import Field
from pydantic_settings import BaseSettings
from typing_extensions import dataclass_transform


class ConfigMeta(ModelMetaclass):
    def __call__(cls, *args, **kwargs):
        instance = super().__call__(*args, **kwargs)
        register_config(instance)
        return instance


@dataclass_transform(kw_only_default=True, field_specifiers=(Field,))
class ConfigBase(BaseSettings, metaclass=ConfigMeta):
    """
    Base class for the running application's configuration. By convention
    all configuration parameters should be specified here in one payload.

    Users are responsible for instantiating their subclass with the desired
    settings. The instance is registered into the global space so the render
    pipeline and context builder can fall back to it when they aren't handed
    explicit values. An error will be thrown if you attempt to instantiate more
    than one configuration.

    """

    # Environment flag. Only "development" enables the detailed exception
    # pages with parsed tracebacks.
    ENVIRONMENT: str = "development"

    # "string" renders complete documents in one pass, "stream" flushes
    # markup at layout boundaries.
    RENDER_MODE: Literal["string", "stream"] = "string"

    # Renders that take longer than this many seconds are logged as warnings
    SLOW_RENDER_THRESHOLD: float = 0.1

    # Headers beyond user-agent, accept-language and referer that may be
    # exposed to views through the render context. Lowercase names.
    ALLOWED_HEADERS: list[str] = []

    # Build artifacts produced ahead of time. Both are optional.
    REGISTRY_MANIFEST: str | None = None
    ASSET_MANIFEST: str | None = None

    model_config = {"frozen": True, "env_prefix": "SHERPA_"}

    @property
    def development_enabled(self) -> bool:
        return self.ENVIRONMENT == "development"


# One global config object
APP_CONFIG: ConfigBase | None = None


def register_config(config: ConfigBase):
    """
    Manually register a configuration instance into the global space. Each application
    can have a maximum of one configuration instance registered. If you attempt to
    register a second instance, an error will be thrown.

    Registration should happen automatically by initializing a new instance of your
    ConfigBase class on application start. This auto-registration is provided by
    the configuration's metaclass in ConfigMeta.

    """
    global APP_CONFIG

    if APP_CONFIG is not None and APP_CONFIG != config:
        raise ValueError("Config already registered")

    APP_CONFIG = config


def unregister_config():
    """
    Unregister the current configuration instance.

    """
    global APP_CONFIG
    APP_CONFIG = None


def get_config() -> ConfigBase:
    """
    Get the current configuration instance that's registered globally. Will
    throw an error if no configuration instance is registered.

    """
    if APP_CONFIG is None:
        raise ValueError(
            "Configuration not registered. Either:\n"
            "1. Call register_config() with your ConfigBase subclass\n"
            "2. Make sure your ConfigBase is imported so the ConfigMeta can auto-register"
        )

    return APP_CONFIG


def get_config_or_default() -> ConfigBase:
    """
    Components that are constructed without an explicit config use the registered
    one if present, otherwise the defaults. The default instance is not registered
    so applications can still provide their own later.

    """
    if APP_CONFIG is not None:
        return APP_CONFIG

    default = ConfigBase()
    # Instantiation auto-registers, defaults should stay local to the caller
    unregister_config()
    return default


@contextmanager
def register_config_in_context(config: ConfigBase):
    """
    Change the global config object to the given config object
    temporarily. Useful for unit testing.

    """
    global APP_CONFIG
    previous_config = APP_CONFIG
    APP_CONFIG = config
    try:
        yield
    finally:
        APP_CONFIG = previous_config
