"""Configuration for flowbuilder: environment settings and graph policies."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

_PACKAGE_DIR = Path(__file__).parent
DEFAULT_CATALOG_PATH = _PACKAGE_DIR / "schemas" / "components.snapshot.json"

SELF_LOOP_POLICIES: frozenset[str] = frozenset({"allow", "reject"})
UNKNOWN_COMPONENT_POLICIES: frozenset[str] = frozenset({"skip", "error"})


@dataclass(frozen=True)
class GraphPolicy:
    """Policies for the two behaviours the server leaves unspecified.

    self_loops:         "allow" — a connection may start and end on the same
                        node (feedback components); "reject" — such a
                        connection is a structural defect.
    unknown_components: "skip" — a node whose type is missing from the
                        catalog is not config-validated (deferred to the
                        server); "error" — it is reported as an
                        unknown_component issue.
    """

    self_loops: str = "allow"
    unknown_components: str = "skip"

    def __post_init__(self) -> None:
        if self.self_loops not in SELF_LOOP_POLICIES:
            raise ValueError(
                f"self_loops must be one of {sorted(SELF_LOOP_POLICIES)}, "
                f"got {self.self_loops!r}"
            )
        if self.unknown_components not in UNKNOWN_COMPONENT_POLICIES:
            raise ValueError(
                f"unknown_components must be one of {sorted(UNKNOWN_COMPONENT_POLICIES)}, "
                f"got {self.unknown_components!r}"
            )

    @property
    def allows_self_loops(self) -> bool:
        return self.self_loops == "allow"


DEFAULT_POLICY = GraphPolicy()


@dataclass(frozen=True)
class Settings:
    """Immutable settings loaded from environment variables."""

    log_level: str = "WARNING"
    catalog_path: Path = DEFAULT_CATALOG_PATH
    history_size: int = 10
    prompt_min_length: int = 10
    prompt_max_length: int = 2000
    policy: GraphPolicy = field(default_factory=GraphPolicy)

    @classmethod
    def from_env(cls) -> Settings:
        log_level = os.getenv("FLOWBUILDER_LOG_LEVEL", "WARNING").upper()
        catalog_path = Path(os.getenv("FLOWBUILDER_CATALOG_PATH", str(DEFAULT_CATALOG_PATH)))
        history_size = int(os.getenv("FLOWBUILDER_HISTORY_SIZE", "10"))
        prompt_min_length = int(os.getenv("FLOWBUILDER_PROMPT_MIN_LENGTH", "10"))
        prompt_max_length = int(os.getenv("FLOWBUILDER_PROMPT_MAX_LENGTH", "2000"))
        policy = GraphPolicy(
            self_loops=os.getenv("FLOWBUILDER_SELF_LOOPS", "allow").lower(),
            unknown_components=os.getenv("FLOWBUILDER_UNKNOWN_COMPONENTS", "skip").lower(),
        )
        return cls(
            log_level=log_level,
            catalog_path=catalog_path,
            history_size=history_size,
            prompt_min_length=prompt_min_length,
            prompt_max_length=prompt_max_length,
            policy=policy,
        )
