"""Readers for PostgreSQL server metadata and configuration files."""

from pgfleet.pgconf.conf import Conf, ConfigSetting, ConfSettings
from pgfleet.pgconf.controldata import ControlData, parse_controldata
from pgfleet.pgconf.describe import Param, Provenance, parse_describe_config
from pgfleet.pgconf.files import ensure_include_directive, load_conf_file, load_postmaster_opts

__all__ = [
    "Conf",
    "ConfigSetting",
    "ConfSettings",
    "ControlData",
    "parse_controldata",
    "Param",
    "Provenance",
    "parse_describe_config",
    "ensure_include_directive",
    "load_conf_file",
    "load_postmaster_opts",
]
