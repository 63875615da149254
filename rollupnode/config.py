"""Configuration of the L2 output submitter."""

from __future__ import annotations

import argparse
import logging
import os
import re
import sys
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from .flags import L2OS_FLAGS, L2OS_REQUIRED_FLAGS, Flag, build_parser

TRACE = 5

_LEVELS = {
    "trace": TRACE,
    "trce": TRACE,
    "debug": logging.DEBUG,
    "dbug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "eror": logging.ERROR,
    "crit": logging.CRITICAL,
}

_ADDRESS = re.compile(r"(?:0[xX])?([0-9a-fA-F]{40})")
_TRUE = {"1", "t", "true", "yes", "on"}


def parse_address(address: str) -> bytes:
    """Parse a 20-byte hex address, with or without 0x prefix."""
    match = _ADDRESS.fullmatch(address)
    if match is None:
        raise ValueError(f"invalid address: {address}")
    return bytes.fromhex(match.group(1))


def parse_log_level(name: str) -> int:
    """Map a log level name such as ``info`` to a :mod:`logging` level."""
    try:
        return _LEVELS[name]
    except KeyError:
        raise ValueError(f"unknown level: {name}") from None


def _env_args(flag: Flag, environ: Mapping[str, str]) -> list[str]:
    value = environ.get(flag.env_var()) if flag.env_var() else None
    if value is None:
        return []
    if flag.kind == "bool":
        return [f"--{flag.name}"] if value.strip().lower() in _TRUE else []
    if flag.kind == "string_slice":
        return [f"--{flag.name}={item}" for item in value.split(",")]
    return [f"--{flag.name}={value}"]


@dataclass
class Config:
    """Settings of the output submitter; durations are in seconds."""

    l1_eth_rpc: str
    l2_eth_rpc: str
    l2oo_address: str
    poll_interval: float
    num_confirmations: int
    safe_abort_nonce_too_low_count: int
    resubmission_timeout: float
    mnemonic: str = field(repr=False)
    l2_output_hd_path: str
    log_level: str = "info"

    @classmethod
    def from_args(
        cls,
        argv: Sequence[str] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> Config:
        """Read the configuration from command-line arguments and environment.

        Arguments take precedence over environment variables. Raises
        ValueError for missing required flags or malformed values.
        """
        if argv is None:
            argv = sys.argv[1:]
        if environ is None:
            environ = os.environ
        parser = build_parser(L2OS_FLAGS, "l2os")
        from_env = [arg for flag in L2OS_FLAGS for arg in _env_args(flag, environ)]
        try:
            ns, extra = parser.parse_known_args([*from_env, *argv])
        except argparse.ArgumentError as err:
            raise ValueError(str(err)) from err
        if extra:
            raise ValueError(f"unrecognized arguments: {' '.join(extra)}")

        missing = [f.name for f in L2OS_REQUIRED_FLAGS if getattr(ns, f.dest) is None]
        if len(missing) == 1:
            raise ValueError(f'Required flag "{missing[0]}" not set')
        if missing:
            raise ValueError(f'Required flags "{", ".join(missing)}" not set')

        return cls(
            l1_eth_rpc=ns.l1_eth_rpc,
            l2_eth_rpc=ns.l2_eth_rpc,
            l2oo_address=ns.l2oo_address,
            poll_interval=ns.poll_interval,
            num_confirmations=ns.num_confirmations,
            safe_abort_nonce_too_low_count=ns.safe_abort_nonce_too_low_count,
            resubmission_timeout=ns.resubmission_timeout,
            mnemonic=ns.mnemonic,
            l2_output_hd_path=ns.l2_output_hd_path,
            log_level=ns.log_level,
        )