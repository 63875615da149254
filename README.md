# rollupnode

Building blocks for an optimistic rollup node and for a service that submits
L2 output checkpoints to L1. Everything is plain Python with no third-party
runtime dependencies; the chain clients and the contract driver are
interfaces (typing protocols) that you supply.

## What is inside

| Module | Purpose |
| --- | --- |
| `rollupnode.backoff` | Retry an operation with a fixed or exponential delay between attempts (`do`, `fixed`, `exponential`, `FixedStrategy`, `ExponentialStrategy`, `FailedPermanentlyError`). |
| `rollupnode.context` | Cancellation and deadlines shared between threads (`background`, `Context`, `Canceled`, `DeadlineExceeded`). |
| `rollupnode.chain` | Block identifiers and references (`BlockID`, `L1BlockRef`, `L2BlockRef`) and minimal `Transaction`, `Receipt`, `Header` and `Block` records. |
| `rollupnode.sendstate` | `SendState`, which decides when a publication should be abandoned after repeated `NonceTooLowError`s. |
| `rollupnode.txmgr` | `SimpleTxManager`, which republishes a transaction with fresh gas prices until it is confirmed; `wait_mined` and `calc_gas_fee_cap`. |
| `rollupnode.heads` | `watch_head_changes`, turning a new-head feed into `L1BlockRef` callbacks. |
| `rollupnode.engine_api` | Engine API payload, attribute, forkchoice and status types with JSON conversion; `encode_quantity` / `decode_quantity`. |
| `rollupnode.l1source` | `Downloader` and `Source` for fetching L1 blocks, receipts and block ranges, with re-org detection (`ReorgError`). |
| `rollupnode.flags` | Flag definitions for the output submitter (`L2OS_FLAGS`) and the rollup node (`OPNODE_FLAGS`), `build_parser` and `parse_duration`. |
| `rollupnode.config` | The output submitter `Config`, built from arguments and environment; `parse_address`, `parse_log_level`. |
| `rollupnode.service` | The polling `Service` that drives a `Driver` and publishes its transactions through `SimpleTxManager`. |

## Contexts

`background()` returns a root `Context`. `with_cancel()` and
`with_timeout(seconds)` derive children that end when their parent ends.
`cancel()`, `is_done()`, `wait(timeout)` and `error()` (a `Canceled` or
`DeadlineExceeded` instance, or `None` while live) complete the interface.
Blocking calls in this package raise the context's error when it ends.

## Retrying with backoff

```python
from rollupnode.backoff import FailedPermanentlyError, do, fixed

def fetch():
    ...  # raise on failure

try:
    do(3, fixed(0.5), fetch)
except FailedPermanentlyError as exc:
    print("gave up after", exc.attempts, "attempts:", exc.last_err)
```

`do` returns what the operation returned. Delays are in seconds.
`exponential()` waits `2**attempt` seconds (attempt counting from 0) plus up
to 250 ms of random jitter, capped at ten seconds.

## Tracking a publication

```python
from rollupnode.sendstate import NonceTooLowError, SendState

state = SendState(3)
for _ in range(3):
    state.process_send_error(NonceTooLowError())

state.should_abort_immediately()   # True: no transaction was mined
```

Only errors whose text contains "nonce too low" are counted. Once any
transaction has been recorded with `tx_mined`, nonce-too-low errors no longer
cause an abort; `tx_not_mined` on the last mined transaction resets the count.
A threshold of zero raises `ValueError`.

## Sending a transaction until it confirms

`SimpleTxManager(name, Config(...), backend).send(ctx, update_gas_price, send_tx)`
calls `update_gas_price(ctx)` to obtain a freshly priced `Transaction`,
publishes it with `send_tx(ctx, tx)` in a background thread, and polls the
`ReceiptSource` backend (`block_number`, `transaction_receipt`) every
`receipt_query_interval` seconds. If nothing is awaiting confirmation when
`resubmission_timeout` passes, it prices and publishes again. It returns the
first receipt with `num_confirmations` confirmations, or raises `Canceled` /
`DeadlineExceeded` when the context ends. Enough nonce-too-low errors with
nothing mined cancel the send. `num_confirmations=0` raises `ValueError`.

`wait_mined(ctx, backend, tx, query_interval, num_confirmations)` does the
polling on its own. `calc_gas_fee_cap(base_fee, gas_tip_cap)` gives
`gas_tip_cap + 2 * base_fee`.

## Reading L1

`Source(client)` wraps an `EthClient` (`block_by_hash`,
`transaction_receipt`, `header_by_number`). `fetch` returns a block with its
receipts, fetched on up to ten threads with three attempts each.
`l1_range(ctx, begin)` returns up to 100 block ids following `begin`, raising
`ReorgError` if `begin` is no longer canonical or the chain changes during
the walk.

`watch_head_changes(ctx, src, fn)` subscribes through
`src.subscribe_new_head(ctx, queue)` and calls `fn` with an `L1BlockRef` for
each `Header` put into the queue; an exception put into the queue ends the
watch and is reported by `HeadSubscription.error()`.

## Configuration

```python
from rollupnode.config import Config

cfg = Config.from_args(
    ["--poll-interval=10s", "--num-confirmations=1"],
    environ={
        "L1_ETH_RPC": "http://localhost:8545",
        "L2_ETH_RPC": "http://localhost:9545",
        "L2OO_ADDRESS": "0x" + "00" * 20,
        "BATCH_SUBMITTER_SAFE_ABORT_NONCE_TOO_LOW_COUNT": "3",
        "BATCH_SUBMITTER_RESUBMISSION_TIMEOUT": "30s",
        "BATCH_SUBMITTER_MNEMONIC": "placeholder",
        "BATCH_SUBMITTER_L2_OUTPUT_HD_PATH": "m/44'/60'/0'/0/0",
    },
)
```

Arguments override environment variables; missing required flags or
malformed values raise `ValueError`. Durations use the `1m30s` / `250ms`
form and are stored in seconds.

## Running the service

`Service(ServiceConfig(driver, poll_interval, l1_client, tx_manager_config))`
runs its loop on a background thread between `start()` and `stop()`, or as a
context manager. Each poll asks the driver for a block range, fetches the
nonce, crafts a transaction and sends it through the transaction manager;
failures are logged and the loop carries on.

## What this package does not do

- It has no command-line program; `Config.from_args` and the flag tables
  are there for your own entry point.
- It does not talk JSON-RPC, derive keys from a mnemonic or sign
  transactions. You supply the clients and the `Driver`.
- `Transaction.hash()` and `Header.hash()` are SHA3-256 digests over the
  record's fields for identification within the package; they are not
  Ethereum transaction or block hashes.

## Running the tests

Install the `test` extra and run `pytest` from the project directory.