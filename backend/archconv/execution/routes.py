"""
Conversion routes.

A route is the ordered list of formats a file passes through on the way to
its target; the last element is the target itself.

Design rules:
- Routes are computed once, before scheduling, for every
  (current, target) pair present in the file set
- Multi-hop chains come from an explicit rule list, never from search
- A chain with any hop no registered converter supports is dropped whole
- Without a chain the route is the single hop [target]; a file already
  in its target format gets no route at all
- Choosing WHICH converter runs a hop is left to dispatch
"""

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence, Tuple

from ..files.models import FileRecord

if TYPE_CHECKING:
    from .converter_registry import ConverterRegistry

logger = logging.getLogger(__name__)


RouteKey = Tuple[str, str]


@dataclass(frozen=True)
class ChainRule:
    """Fixed multi-hop chain from any of `sources` to `target`."""

    sources: Tuple[str, ...]
    target: str
    chain: Tuple[str, ...]

    def matches(self, current: str, target: str) -> bool:
        return current in self.sources and target == self.target


MSG_FORMATS = ("x-fmt/430", "fmt/1144")
EML_FORMATS = ("fmt/278", "fmt/950")

DEFAULT_CHAINS: Tuple[ChainRule, ...] = (
    ChainRule(MSG_FORMATS, "fmt/477", ("fmt/950", "fmt/18", "fmt/477")),
    ChainRule(MSG_FORMATS, "fmt/18", ("fmt/950", "fmt/18")),
    ChainRule(EML_FORMATS, "fmt/477", ("fmt/18", "fmt/477")),
)


class RouteTable:
    """
    Lock-guarded (current, target) -> chain map.

    Filled and validated before scheduling; read by every worker afterwards.
    """

    def __init__(self):
        self._routes: Dict[RouteKey, Tuple[str, ...]] = {}
        self._lock = threading.Lock()

    def register(self, current: str, target: str, chain: Sequence[str]) -> None:
        with self._lock:
            self._routes[(current, target)] = tuple(chain)

    def remove(self, current: str, target: str) -> None:
        with self._lock:
            self._routes.pop((current, target), None)

    def get(self, current: str, target: str) -> Optional[Tuple[str, ...]]:
        with self._lock:
            return self._routes.get((current, target))

    def items(self) -> List[Tuple[RouteKey, Tuple[str, ...]]]:
        with self._lock:
            return list(self._routes.items())

    def route_for(self, current: str, target: str) -> List[str]:
        """
        Route for a file, as a fresh mutable list.

        Registered chain if any; else [target] when a conversion is needed;
        else [].
        """
        chain = self.get(current, target)
        if chain is not None:
            return list(chain)
        if current != target:
            return [target]
        return []

    def __len__(self) -> int:
        with self._lock:
            return len(self._routes)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._routes


class RouteResolver:
    """Builds and validates the route table against the registered converters."""

    def __init__(
        self,
        converters: "ConverterRegistry",
        chains: Iterable[ChainRule] = DEFAULT_CHAINS,
    ):
        self.converters = converters
        self.chains: Tuple[ChainRule, ...] = tuple(chains)
        self.table = RouteTable()
        self._rejected: set = set()
        self._lock = threading.Lock()

    def build_routes(self, files: Iterable[FileRecord]) -> RouteTable:
        """Register a chain for every (current, target) pair that has one, then validate."""
        pairs = {
            (record.current_format, record.target_format)
            for record in files
            if record.target_format is not None
        }
        for current, target in sorted(pairs):
            rule = self._find_rule(current, target)
            if rule is not None:
                self.table.register(current, target, rule.chain)

        self._validate()
        logger.info(f"[Routes] {len(self.table)} multi-hop route(s) for {len(pairs)} format pair(s)")
        return self.table

    def route_for(self, current: str, target: Optional[str]) -> List[str]:
        """
        Route for one file.

        Pairs first seen mid-run (attachments, split pages) are looked up
        and validated on demand.
        """
        if target is None:
            return []
        key = (current, target)
        with self._lock:
            if key not in self.table and key not in self._rejected:
                rule = self._find_rule(current, target)
                if rule is not None:
                    if self.chain_is_valid(current, rule.chain):
                        self.table.register(current, target, rule.chain)
                    else:
                        self._rejected.add(key)
        return self.table.route_for(current, target)

    def chain_is_valid(self, current: str, chain: Sequence[str]) -> bool:
        """Every consecutive pair along the chain is supported by some converter."""
        source = current
        for hop in chain:
            if self.converters.first_supporting(source, hop) is None:
                return False
            source = hop
        return True

    def _find_rule(self, current: str, target: str) -> Optional[ChainRule]:
        for rule in self.chains:
            if rule.matches(current, target):
                return rule
        return None

    def _validate(self) -> None:
        for (current, target), chain in self.table.items():
            if not self.chain_is_valid(current, chain):
                logger.info(f"[Routes] Dropping unsupported chain {current} -> {' -> '.join(chain)}")
                self.table.remove(current, target)
                with self._lock:
                    self._rejected.add((current, target))
