#!/usr/bin/env python3
"""Query catalog exercised during every probe."""

from dataclasses import dataclass
from typing import Iterator


TPCH_NUM_QUERIES = 22


@dataclass(frozen=True)
class QueryCatalog:
    """Ordered, fixed set of query ids ``1..num_queries``.

    Attributes:
        generator: Workload generator the ids belong to
        num_queries: Number of queries in the catalog
    """

    generator: str = "tpch"
    num_queries: int = TPCH_NUM_QUERIES

    def __post_init__(self) -> None:
        if self.num_queries < 1:
            raise ValueError(f"Query catalog must not be empty (num_queries={self.num_queries})")

    def __iter__(self) -> Iterator[int]:
        return iter(range(1, self.num_queries + 1))

    def __len__(self) -> int:
        return self.num_queries
