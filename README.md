# boostrelay

Core pieces of a block-builder relay for Ethereum proof-of-stake networks.

## What is in it

- `boostrelay.beacon_instance` — `ProdBeaconInstance` talks to one beacon node
  over the standard REST API. It can fetch sync status, current slot, state
  validators (keyed by lower-case pubkey), proposer duties, headers, blocks,
  genesis, spec, fork schedule, randao and withdrawals, and it can publish
  blocks. `subscribe_to_head_events(queue)` and
  `subscribe_to_payload_attributes_events(queue)` read the server-sent event
  stream and call `queue.put(...)` for each parsed event. They reconnect after
  errors and run until `close()` is called. `iter_sse_data(lines)` parses an
  event stream on its own.
- `boostrelay.multi_beacon_client` — `MultiBeaconClient` puts several beacon
  instances behind one interface:
  - `best_sync_status()` queries every node concurrently and prefers a synced
    one.
  - The getters return the first successful answer. Most of them move the node
    that answered to the front of the list for later calls.
  - `publish_block(block)` sends the block to all nodes at once and returns the
    first status code other than 202.
  - `subscribe_to_*` methods start one daemon thread per node. A single event
    may therefore arrive once per node.
- `boostrelay.beacon_fetch` — `fetch_beacon(method, url, payload)`, the JSON
  request helper the clients use. It raises `BeaconHTTPError` or
  `BeaconRequestError`.
- `boostrelay.types` — `new_eth_network_details(name)` returns fork versions,
  the genesis validators root and the builder and proposer signing domains. It
  knows `mainnet`, `sepolia`, `goerli`, `ropsten` and `zhejiang`. For `custom`
  it reads the values from the environment. The module also holds the bid trace
  records `BidTrace`, `BoostBidTrace`, `BidTraceV2`, `BidTraceV2JSON` and
  `BidTraceV2WithTimestampJSON`, with JSON and CSV forms.
- `boostrelay.blocks` — `SignedBeaconBlock`, `SignedBlindedBeaconBlock` and
  `BuilderSubmitBlockRequest` hold bellatrix or capella data as decoded JSON and
  give accessors such as `slot()`, `block_hash()` and `value()`.
- `boostrelay.utils` — these helpers cover slot position in an epoch, settings
  read from the environment, and `compute_domain`. They also parse mev-boost
  user agents, decode hex pubkeys and hashes, convert little-endian 256-bit
  values, and send JSON requests with `make_request`.
- `boostrelay.common` — relay error classes, `Profile`, `BuilderStatus`,
  `HTTPServerTimeouts`, slot and epoch durations, and `log_setup(json_format,
  log_level)`, which configures the `boostrelay` logger to write text or JSON
  to stdout.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Command line

```
boostrelay            # prints the version and the help text
boostrelay version    # prints the version
```

## Library use

```python
from boostrelay.beacon_instance import ProdBeaconInstance
from boostrelay.multi_beacon_client import MultiBeaconClient

client = MultiBeaconClient(
    [ProdBeaconInstance("http://localhost:3500"), ProdBeaconInstance("http://localhost:3501")],
    allow_syncing_beacon_node=False,
)

status = client.best_sync_status()
print(status.head_slot, status.is_syncing)

duties = client.get_proposer_duties(epoch=100)
for duty in duties.data:
    print(duty.slot, duty.pubkey)
```

Failures raise exceptions:

- `BeaconNodeSyncingError`: no node reported itself synced. This does not apply
  when syncing nodes are allowed.
- `BeaconNodesUnavailableError`: no node answered the sync-status,
  validators or proposer-duties request.
- The other getters re-raise the last node's error.
- `PublishBlockError`: no node accepted a published block. It carries the last
  status code and error.
- `WithdrawalsBeforeCapellaError`: a node reported that withdrawals are not
  available before Capella.

```python
from boostrelay.types import new_eth_network_details

details = new_eth_network_details("mainnet")
print(details)
```

## Environment

| Variable | Purpose | Default |
| --- | --- | --- |
| `SEC_PER_SLOT` | seconds per slot | `12` |
| `SLOTS_PER_EPOCH` | slots per epoch | `32` |
| `ALLOW_SYNCING_BEACON_NODE` | accept a syncing beacon node when set and `MultiBeaconClient` gets no explicit choice | unset |
| `GENESIS_FORK_VERSION`, `GENESIS_VALIDATORS_ROOT`, `BELLATRIX_FORK_VERSION`, `CAPELLA_FORK_VERSION` | values for the `custom` network | empty |

## What it does not do

The package has no relay API server, no website and no background housekeeping
service. It has no Redis, memcached or PostgreSQL storage, and it does not sign
bids. The command line only prints the version and help. It reads connection
settings such as `REDIS_URI` or `POSTGRES_DSN` into its parser defaults but
never uses them.