"""
Exporter configuration.

The YAML document selects what is exported:

    roots:      inventory entities to start discovery from
    objects:    entity types whose performance is exported
    counters:   performance counters as group, name and rollup

Connection settings come from command line flags, each defaulting from a
VMOMI_EXPORTER_* environment variable.
"""

from dataclasses import dataclass, field
from os import getenv
from typing import List

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from vmomi_exporter.counter import CounterInfo
from vmomi_exporter.entity import ROOT_FOLDER_NAME, ManagedEntityType

ENV_PREFIX = "VMOMI_EXPORTER_"


class ConfigError(Exception):
    pass


class Root(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: ManagedEntityType
    name: str = ROOT_FOLDER_NAME


class Object(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: ManagedEntityType


class Counter(BaseModel):
    model_config = ConfigDict(extra="forbid")

    group: str
    name: str
    rollup: str

    def to_counter_info(self):
        return CounterInfo(id=0, group=self.group, name=self.name, rollup=self.rollup)


class Instance(BaseModel):
    entity_type: ManagedEntityType
    entity_id: str
    entity_name: str
    instance: str
    counter_id: int


def _default_roots():
    return [Root(type=ManagedEntityType.FOLDER, name=ROOT_FOLDER_NAME)]


def _default_objects():
    return [Object(type=ManagedEntityType.HOST_SYSTEM),
            Object(type=ManagedEntityType.VIRTUAL_MACHINE)]


def _default_counters():
    return [Counter(group="cpu", name="usage", rollup="average"),
            Counter(group="cpu", name="usagemhz", rollup="average"),
            Counter(group="mem", name="usage", rollup="average")]


class Config(BaseModel):
    model_config = ConfigDict(extra="forbid")

    counters: List[Counter] = Field(default_factory=_default_counters)
    objects: List[Object] = Field(default_factory=_default_objects)
    roots: List[Root] = Field(default_factory=_default_roots)

    @property
    def object_types(self):
        types = []
        for obj in self.objects:
            if obj.type not in types:
                types.append(obj.type)
        return types

    @property
    def counter_infos(self):
        return [c.to_counter_info() for c in self.counters]


def default_config():
    return Config()


def decode_config(text):
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Malformed config: {e}") from e

    if data is None:
        return default_config()

    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a mapping, got {type(data).__name__}")

    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config: {e}") from e


def load_config(path):
    if not path:
        return default_config()

    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except OSError as e:
        raise ConfigError(f"Could not read config {path}: {e}") from e

    return decode_config(text)


def _dump(document):
    return yaml.safe_dump(document, sort_keys=False, allow_unicode=True)


def encode_config(config):
    return _dump(config.model_dump(mode="json"))


def encode_counters(counters):
    return _dump({"counters": [Counter(group=c.group, name=c.name, rollup=c.rollup).model_dump(mode="json")
                               for c in counters]})


def encode_roots(entities):
    return _dump({"roots": [Root(type=e.type, name=e.name).model_dump(mode="json") for e in entities]})


def encode_instances(infos):
    return _dump({"instances": [Instance(entity_type=i.entity_type,
                                         entity_id=i.entity_id,
                                         entity_name=i.entity_name,
                                         instance=i.instance,
                                         counter_id=i.counter_id).model_dump(mode="json")
                                for i in infos]})


def _env_bool(name, default=False):
    value = getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name, default):
    value = getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


@dataclass
class Settings:
    target_url: str = field(default_factory=lambda: getenv(f"{ENV_PREFIX}TARGET_URL", "https://127.0.0.1/sdk"))
    target_user: str = field(default_factory=lambda: getenv(f"{ENV_PREFIX}TARGET_USER", ""))
    target_password: str = field(default_factory=lambda: getenv(f"{ENV_PREFIX}TARGET_PASSWORD", ""))
    no_verify_ssl: bool = field(default_factory=lambda: _env_bool(f"{ENV_PREFIX}TARGET_NO_VERIFY_SSL"))
    timeout: int = field(default_factory=lambda: _env_int(f"{ENV_PREFIX}TARGET_TIMEOUT", 10))
    config: str = field(default_factory=lambda: getenv(f"{ENV_PREFIX}CONFIG", ""))
    exporter: str = field(default_factory=lambda: getenv(f"{ENV_PREFIX}URL", "127.0.0.1:9247"))
    log_level: str = field(default_factory=lambda: getenv(f"{ENV_PREFIX}LOG_LEVEL", "INFO"))

    @property
    def listen(self):
        host, _, port = self.exporter.rpartition(":")
        if not host or not port.isdigit():
            raise ConfigError(f"Exporter address must be host:port, got {self.exporter!r}")
        return host, int(port)
