import pytest
import yaml

from kcli.core.exceptions import ConfigError, EnvironmentNotFoundError, NoActiveEnvironmentError
from kcli.models.environments import Environment
from kcli.services.store import EnvironmentStore


@pytest.fixture
def store(tmp_path):
    return EnvironmentStore(tmp_path / "kcli" / "config.yaml")


def test_empty_store(store):
    assert store.list() == []
    with pytest.raises(NoActiveEnvironmentError):
        store.active()


def test_first_environment_becomes_active(store):
    store.upsert(Environment(name="local", brokers="localhost:9092"))
    store.upsert(Environment(name="staging", brokers="k1:9092,k2:9092"))

    assert store.active().name == "local"
    assert [e.name for e in store.list()] == ["local", "staging"]
    assert store.get("staging").bootstrap_servers == ["k1:9092", "k2:9092"]


def test_file_layout(store):
    store.upsert(Environment(name="local", brokers="localhost:9092"))
    raw = yaml.safe_load(store.path.read_text())
    assert raw == {"local": {"brokers": "localhost:9092", "is_active": True, "security_protocol": "PLAINTEXT"}}


def test_activate_switches_exactly_one(store):
    for name in ("a", "b", "c"):
        store.upsert(Environment(name=name, brokers=f"{name}:9092"))
    store.activate("c")
    assert [e.name for e in store.list() if e.is_active] == ["c"]


def test_activate_unknown_leaves_file_untouched(store):
    store.upsert(Environment(name="a", brokers="a:9092"))
    before = store.path.read_text()
    with pytest.raises(EnvironmentNotFoundError, match="Environment nope not found"):
        store.activate("nope")
    assert store.path.read_text() == before


def test_upsert_keeps_active_flag(store):
    store.upsert(Environment(name="a", brokers="a:9092"))
    store.upsert(Environment(name="b", brokers="b:9092"))
    store.upsert(Environment(name="a", brokers="a2:9092"))
    assert store.active().brokers == "a2:9092"
    assert not store.get("b").is_active


def test_removing_active_promotes_next(store):
    for name in ("a", "b", "c"):
        store.upsert(Environment(name=name, brokers=f"{name}:9092"))
    store.remove("a")
    assert store.active().name == "b"
    store.remove("c")
    assert [e.name for e in store.list()] == ["b"]


def test_remove_unknown(store):
    with pytest.raises(EnvironmentNotFoundError):
        store.remove("ghost")


def test_security_fields_round_trip(store):
    env = Environment(
        name="secure", brokers="k:9093", security_protocol="SASL_SSL",
        sasl_mechanism="PLAIN", sasl_plain_username="u", sasl_plain_password="p", ssl_cafile="/ca.pem",
    )
    store.upsert(env)
    assert store.get("secure") == env.model_copy(update={"is_active": True})


@pytest.mark.parametrize("content", ["- just\n- a list\n", "local: [unclosed\n", "bad name!:\n  brokers: x\n"])
def test_corrupt_file_is_config_error(store, content):
    store.path.parent.mkdir(parents=True)
    store.path.write_text(content)
    with pytest.raises(ConfigError):
        store.list()


def test_invalid_environment_name_rejected():
    with pytest.raises(ValueError):
        Environment(name="has space", brokers="x:1")
