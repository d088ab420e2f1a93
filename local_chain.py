# local_chain.py - Host environment: block clock and notification log

import time
from dataclasses import dataclass, field

DEFAULT_CHAIN_ID = 31337


@dataclass(frozen=True)
class LogEntry:
    index: int
    contract: str
    name: str
    args: dict = field(default_factory=dict)

    def to_json(self):
        return {"index": self.index, "contract": self.contract, "name": self.name, "args": self.args}


class LocalChain:
    """
    Stand-in for the ledger host. It supplies block timestamps and records
    emitted notifications. Callers must serialize mutating calls (the Flask
    dev node and the tests do); the contracts running here take no locks.
    """

    def __init__(self, chain_id=DEFAULT_CHAIN_ID, clock=None):
        self.chain_id = chain_id
        self._clock = clock or time.time
        self.logs = []

    def timestamp(self):
        return int(self._clock())

    def emit(self, contract, name, **args):
        entry = LogEntry(len(self.logs), contract, name, args)
        self.logs.append(entry)
        return entry

    def events(self, name=None, since=0):
        return [log for log in self.logs[since:] if name is None or log.name == name]
