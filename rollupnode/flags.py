"""Command-line flags of the output submitter and the rollup node."""

from __future__ import annotations

import argparse
import re
from dataclasses import dataclass
from typing import Iterable

_UINT64_MAX = 2**64 - 1

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_NUMBER = r"(?:\d+(?:\.\d*)?|\.\d+)"
_DURATION_PART = re.compile(rf"({_NUMBER})(ns|us|µs|μs|ms|s|m|h)")
_BARE_NUMBER = re.compile(_NUMBER)


@dataclass(frozen=True)
class Flag:
    """One configuration option, settable on the command line or from the environment.

    ``kind`` is one of ``string``, ``string_slice``, ``bool``, ``duration``
    and ``uint64``.
    """

    name: str
    usage: str
    kind: str = "string"
    required: bool = False
    default: str | None = None
    env: str = ""

    @property
    def dest(self) -> str:
        """The attribute name the parsed value is stored under."""
        return re.sub(r"[-.]", "_", self.name)

    def env_var(self) -> str:
        """The environment variable that supplies this flag's value."""
        return self.env


def parse_duration(text: str) -> float:
    """Parse a duration such as ``1m30s`` or ``250ms`` into seconds."""
    rest = text
    sign = 1.0
    if rest[:1] in ("+", "-"):
        sign = -1.0 if rest[0] == "-" else 1.0
        rest = rest[1:]
    if rest == "0":
        return 0.0
    if not rest:
        raise ValueError(f"time: invalid duration {text!r}")
    total = 0.0
    pos = 0
    while pos < len(rest):
        match = _DURATION_PART.match(rest, pos)
        if match is None:
            number = _BARE_NUMBER.match(rest, pos)
            if number is not None and number.end() == len(rest):
                raise ValueError(f"time: missing unit in duration {text!r}")
            raise ValueError(f"time: invalid duration {text!r}")
        total += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()
    return sign * total


def _uint64(text: str) -> int:
    if not re.fullmatch(r"\d+", text):
        raise ValueError(f"invalid unsigned integer {text!r}")
    value = int(text)
    if value > _UINT64_MAX:
        raise ValueError(f"value out of range: {text}")
    return value


_uint64.__name__ = "uint64"

_TYPES = {"string": str, "duration": parse_duration, "uint64": _uint64}


def build_parser(flags: Iterable[Flag], prog: str | None = None) -> argparse.ArgumentParser:
    """An argument parser accepting ``--<name>`` for each flag.

    Required flags are not enforced here, since their values may come from
    the environment; parse errors raise :class:`argparse.ArgumentError`.
    """
    parser = argparse.ArgumentParser(prog=prog, allow_abbrev=False, exit_on_error=False)
    for flag in flags:
        help_text = flag.usage
        if flag.env:
            help_text += f" [${flag.env}]"
        option = f"--{flag.name}"
        if flag.kind == "bool":
            parser.add_argument(option, dest=flag.dest, action="store_true", help=help_text)
        elif flag.kind == "string_slice":
            parser.add_argument(
                option, dest=flag.dest, action="append", default=None, help=help_text
            )
        elif flag.kind in _TYPES:
            parser.add_argument(
                option,
                dest=flag.dest,
                type=_TYPES[flag.kind],
                default=flag.default,
                help=help_text,
            )
        else:
            raise ValueError(f"unknown flag kind {flag.kind!r}")
    return parser


def _submitter_env(name: str) -> str:
    return "BATCH_SUBMITTER_" + name


def _node_env(name: str) -> str:
    return "ROLLUP_NODE_" + name


# Output submitter flags.

L1_ETH_RPC_FLAG = Flag(
    "l1-eth-rpc", "HTTP provider URL for L1", required=True, env="L1_ETH_RPC"
)
L2_ETH_RPC_FLAG = Flag(
    "l2-eth-rpc", "HTTP provider URL for L2", required=True, env="L2_ETH_RPC"
)
L2OO_ADDRESS_FLAG = Flag(
    "l2oo-address",
    "Address of the L2OutputOracle contract",
    required=True,
    env="L2OO_ADDRESS",
)
POLL_INTERVAL_FLAG = Flag(
    "poll-interval",
    "Delay between querying L2 for more transactions and creating a new batch",
    kind="duration",
    required=True,
    env=_submitter_env("POLL_INTERVAL"),
)
NUM_CONFIRMATIONS_FLAG = Flag(
    "num-confirmations",
    "Number of confirmations which we will wait after appending a new batch",
    kind="uint64",
    required=True,
    env=_submitter_env("NUM_CONFIRMATIONS"),
)
SAFE_ABORT_NONCE_TOO_LOW_COUNT_FLAG = Flag(
    "safe-abort-nonce-too-low-count",
    "Number of ErrNonceTooLow observations required to give up on a tx at a "
    "particular nonce without receiving confirmation",
    kind="uint64",
    required=True,
    env=_submitter_env("SAFE_ABORT_NONCE_TOO_LOW_COUNT"),
)
RESUBMISSION_TIMEOUT_FLAG = Flag(
    "resubmission-timeout",
    "Duration we will wait before resubmitting a transaction to L1",
    kind="duration",
    required=True,
    env=_submitter_env("RESUBMISSION_TIMEOUT"),
)
MNEMONIC_FLAG = Flag(
    "mnemonic",
    "The mnemonic used to derive the wallets for either the sequencer or the l2output",
    required=True,
    env=_submitter_env("MNEMONIC"),
)
L2_OUTPUT_HD_PATH_FLAG = Flag(
    "l2-output-hd-path",
    "The HD path used to derive the l2output wallet from the mnemonic. "
    "The mnemonic flag must also be set.",
    required=True,
    env=_submitter_env("L2_OUTPUT_HD_PATH"),
)
LOG_LEVEL_FLAG = Flag(
    "log-level",
    "The lowest log level that will be output",
    default="info",
    env=_submitter_env("LOG_LEVEL"),
)

L2OS_REQUIRED_FLAGS: tuple[Flag, ...] = (
    L1_ETH_RPC_FLAG,
    L2_ETH_RPC_FLAG,
    L2OO_ADDRESS_FLAG,
    POLL_INTERVAL_FLAG,
    NUM_CONFIRMATIONS_FLAG,
    SAFE_ABORT_NONCE_TOO_LOW_COUNT_FLAG,
    RESUBMISSION_TIMEOUT_FLAG,
    MNEMONIC_FLAG,
    L2_OUTPUT_HD_PATH_FLAG,
)
L2OS_OPTIONAL_FLAGS: tuple[Flag, ...] = (LOG_LEVEL_FLAG,)
L2OS_FLAGS: tuple[Flag, ...] = L2OS_REQUIRED_FLAGS + L2OS_OPTIONAL_FLAGS

# Rollup node flags.

NODE_L1_ADDR_FLAG = Flag(
    "l1",
    "Address of L1 User JSON-RPC endpoint to use (eth namespace required)",
    required=True,
    default="http://127.0.0.1:8545",
    env=_node_env("L1_ETH_RPC"),
)
NODE_L2_ENGINE_ADDRS_FLAG = Flag(
    "l2",
    "Addresses of L2 Engine JSON-RPC endpoints to use (engine and eth namespace required)",
    kind="string_slice",
    required=True,
    env=_node_env("L2_ENGINE_RPC"),
)
NODE_ROLLUP_CONFIG_FLAG = Flag(
    "rollup.config",
    "Rollup chain parameters",
    required=True,
    env=_node_env("ROLLUP_CONFIG"),
)
NODE_SEQUENCING_ENABLED_FLAG = Flag(
    "sequencing.enabled",
    "enable sequencing",
    kind="bool",
    env=_node_env("SEQUENCING_ENABLED"),
)
NODE_BATCH_SUBMITTER_KEY_FLAG = Flag(
    "batchsubmitter.key",
    "key for batch submitting",
    env=_node_env("BATCHSUBMITTER_KEY"),
)
NODE_LOG_LEVEL_FLAG = Flag(
    "log.level",
    "The lowest log level that will be output",
    default="info",
    env=_node_env("LOG_LEVEL"),
)
NODE_LOG_FORMAT_FLAG = Flag(
    "log.format",
    "Format the log output. Supported formats: 'text', 'json'",
    default="text",
    env=_node_env("LOG_FORMAT"),
)
NODE_LOG_COLOR_FLAG = Flag(
    "log.color",
    "Color the log output",
    kind="bool",
    env=_node_env("LOG_COLOR"),
)

OPNODE_REQUIRED_FLAGS: tuple[Flag, ...] = (
    NODE_L1_ADDR_FLAG,
    NODE_L2_ENGINE_ADDRS_FLAG,
    NODE_ROLLUP_CONFIG_FLAG,
)
OPNODE_OPTIONAL_FLAGS: tuple[Flag, ...] = (
    NODE_SEQUENCING_ENABLED_FLAG,
    NODE_BATCH_SUBMITTER_KEY_FLAG,
    NODE_LOG_LEVEL_FLAG,
    NODE_LOG_FORMAT_FLAG,
    NODE_LOG_COLOR_FLAG,
)
OPNODE_FLAGS: tuple[Flag, ...] = OPNODE_REQUIRED_FLAGS + OPNODE_OPTIONAL_FLAGS