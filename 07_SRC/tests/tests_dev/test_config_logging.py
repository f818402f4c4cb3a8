# ==================================================
# ======= TESTS: Config, logging & error policy ====
# ==================================================
from __future__ import annotations

import logging

import pytest
import yaml

from imgarray.core.config import (ClusterConfig, DecoderConfig, GlobalConfig, WindowConfig,
                                  get_global_config, get_window_config, load_configs, save_configs,
                                  set_global_config, set_window_config)
from imgarray.core.typed_array import TypedArray
from imgarray.utils.decorators import log_errors, timed
from imgarray.utils.logger import (get_debug_logger, get_error_logger, get_logger,
                                   make_file_handler, resolve_level, resolve_log_dir)


# ===================
# Configuration
# ===================

def test_update_config_rejects_unknown_keys():
    cfg = ClusterConfig()
    assert cfg.update_config(k=3).k == 3
    with pytest.raises(AttributeError):
        cfg.update_config(clusters=3)


def test_global_config_validates_strategy():
    with pytest.raises(ValueError):
        GlobalConfig(processor_strategy="gpu")
    with pytest.raises(ValueError):
        set_global_config(processor_strategy="gpu")


def test_set_global_config_replaces_and_updates():
    cfg = set_global_config(GlobalConfig(default_dtype="float64"))
    assert get_global_config() is cfg
    assert TypedArray(1, 1, 1).dtype == "float64"
    set_global_config(default_dtype="int16")
    assert TypedArray(1, 1, 1).dtype == "int16"
    with pytest.raises(TypeError):
        set_global_config(WindowConfig())


def test_set_window_config_replaces_and_updates():
    cfg = set_window_config(WindowConfig(size=(5, 5)))
    assert get_window_config() is cfg
    set_window_config(fillvalue=2.0)
    assert get_window_config().size == (5, 5) and get_window_config().fillvalue == 2.0
    with pytest.raises(TypeError):
        set_window_config(GlobalConfig())
    with pytest.raises(AttributeError):
        set_window_config(radius=2)


def test_yaml_round_trip(tmp_path):
    path = save_configs(
        tmp_path / "cfg" / "imgarray.yaml",
        global_=GlobalConfig(seed=7, processor_strategy="classic"),
        window=WindowConfig(size=(5, 3)),
        decoder=DecoderConfig(unit="raw"),
    )
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert set(raw) == {"global", "window", "decoder"}

    cfgs = load_configs(path)
    assert cfgs["global"].seed == 7
    assert cfgs["global"].processor_strategy == "classic"
    assert cfgs["window"].size == (5, 3)
    assert cfgs["decoder"].unit == "raw"
    assert cfgs["cluster"] == ClusterConfig()


def test_yaml_unknown_section(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("filters:\n  size: 3\n", encoding="utf-8")
    with pytest.raises(KeyError):
        load_configs(path)
    with pytest.raises(KeyError):
        save_configs(tmp_path / "out.yaml", filters=WindowConfig())


# ===================
# Logging
# ===================

def test_log_dir_resolution(tmp_path, monkeypatch):
    monkeypatch.delenv("IMGARRAY_LOG_DIR", raising=False)
    assert resolve_log_dir() is None
    monkeypatch.setenv("IMGARRAY_LOG_DIR", str(tmp_path / "env"))
    assert resolve_log_dir() == tmp_path / "env"
    set_global_config(log_dir=str(tmp_path / "cfg"))
    assert resolve_log_dir() == tmp_path / "cfg"
    assert resolve_log_dir(tmp_path / "explicit") == tmp_path / "explicit"


def test_resolve_level():
    assert resolve_level() == logging.WARNING
    set_global_config(verbose=True)
    assert resolve_level() == logging.INFO
    set_global_config(verbose=False, log_level="debug")
    assert resolve_level() == logging.DEBUG


def test_logger_handlers_are_not_duplicated(monkeypatch):
    monkeypatch.delenv("IMGARRAY_LOG_DIR", raising=False)
    first = get_logger("imgarray.test_console")
    count = len(first.handlers)
    second = get_logger("imgarray.test_console")
    assert first is second
    assert len(second.handlers) == count == 1
    assert not second.propagate


def test_error_and_debug_loggers_propagate_without_log_dir(monkeypatch):
    monkeypatch.delenv("IMGARRAY_LOG_DIR", raising=False)
    assert get_error_logger("imgarray.test_errors").propagate
    assert get_debug_logger("imgarray.test_debug").propagate


def test_make_file_handler_writes(tmp_path):
    handler = make_file_handler(tmp_path / "logs" / "run.log", logging.INFO)
    logger = logging.getLogger("imgarray.test_file_handler")
    logger.propagate = False
    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    try:
        logger.info("window expanded")
    finally:
        logger.removeHandler(handler)
        handler.close()
    assert "window expanded" in (tmp_path / "logs" / "run.log").read_text(encoding="utf-8")


# ===================
# Error policy / decorators
# ===================

def test_errors_return_none_when_not_raising():
    set_global_config(raise_errors=False)
    arr = TypedArray(2, 2, 1)
    assert arr.get(5, 5, 0) is None
    assert arr.add("x") is None
    assert arr.zip(TypedArray(3, 3, 1), lambda a, b: a + b) is None


def test_log_errors_forced_modes():
    @log_errors("boom", raise_exception=False)
    def quiet():
        raise RuntimeError("quiet failure")

    @log_errors("boom")
    def loud():
        raise RuntimeError("loud failure")

    assert quiet() is None
    with pytest.raises(RuntimeError):
        loud()


def test_timed_logs_elapsed_time(debug_records):
    @timed("square")
    def square(x):
        return x * x

    assert square(3) == 9
    messages = [r.getMessage() for r in debug_records]
    assert any(m.startswith("Execution time for 'square'") for m in messages)


def test_window_operations_are_timed(debug_records):
    TypedArray(3, 3, 1).neighbor()
    assert any("TypedArray.structure" in r.getMessage() for r in debug_records)
