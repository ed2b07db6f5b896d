"""
Abstract scoring oracles consumed by the refinement engine.

The refinement engine never looks inside a classifier. It talks to three
narrow, stateless scoring contracts:

- **ResidueScorer**: per-residue soluble / transmembrane / signal-peptide
  probabilities (x 1000) for a whole sequence
- **SegmentScorer**: P(TMH) for a closed residue range
- **TopologyScorer**: P(Inside) for one side of the membrane, given
  aggregated features of both sides

Concrete oracles implement the ``_..._impl`` hooks; the public methods of the
base classes validate inputs and outputs, wrap any failure into OracleError,
and (for residue scoring) cache results on disk. This follows the Strategy
pattern: oracles are interchangeable without touching the engine.
"""

from __future__ import annotations

import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, TypeVar

from diskcache import Cache

from ..core.models import ConservationProfile, RawScores
from ..core.sequence import sequence_hash

if TYPE_CHECKING:
    from .features import SideFeatures

logger = logging.getLogger(__name__)

O = TypeVar("O", bound="BaseOracle")


class OracleRole(str, Enum):
    """Which of the three scoring contracts an oracle fulfils."""
    RESIDUE = "residue"
    SEGMENT = "segment"
    TOPOLOGY = "topology"


class OracleType(str, Enum):
    """Classification of oracles by methodology."""
    RULE_BASED = "rule_based"  # Hydropathy, positive-inside rule
    MACHINE_LEARNING = "machine_learning"  # Fitted estimators


@dataclass
class OracleConfig:
    """
    Configuration for oracle behaviour.

    Attributes:
        use_cache: Cache residue-scoring output on disk
        cache_dir: Cache location (defaults to ~/.cache/tmrefine)
        cache_ttl: Cache entry lifetime in seconds
    """
    use_cache: bool = False
    cache_dir: Optional[Path] = None
    cache_ttl: int = 86400 * 30  # 30 days default

    def __post_init__(self):
        if self.cache_dir is None:
            self.cache_dir = Path.home() / ".cache" / "tmrefine"
        if self.use_cache:
            self.cache_dir.mkdir(parents=True, exist_ok=True)


class OracleError(Exception):
    """Raised when an oracle computation fails."""
    pass


class OracleUnavailableError(OracleError):
    """Raised when an oracle cannot be constructed (e.g. missing model)."""
    pass


class BaseOracle(ABC):
    """
    Common base of all scoring oracles.

    Subclasses set the class attributes and implement the role-specific
    ``_..._impl`` hook of ResidueScorer, SegmentScorer or TopologyScorer.
    """

    name: str = "BaseOracle"
    version: str = "0.0"
    role: OracleRole = OracleRole.SEGMENT
    oracle_type: OracleType = OracleType.RULE_BASED
    description: str = ""

    def __init__(self, config: Optional[OracleConfig] = None):
        self.config = config or OracleConfig()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, version={self.version!r})"

    def get_info(self) -> dict[str, Any]:
        """Oracle metadata for listings and logging."""
        return {
            "name": self.name,
            "version": self.version,
            "role": self.role.value,
            "type": self.oracle_type.value,
            "description": self.description,
        }


class ResidueScorer(BaseOracle):
    """
    Per-residue three-state scorer.

    ``score_sequence`` returns sol/tmh/sig tracks of length L with values in
    [0, 1000].
    """

    role = OracleRole.RESIDUE

    def __init__(self, config: Optional[OracleConfig] = None):
        super().__init__(config)
        self._cache: Optional[Cache] = None

        if self.config.use_cache:
            cache_path = self.config.cache_dir / self.name.lower().replace(" ", "_")
            self._cache = Cache(str(cache_path))

    def _get_cache_key(self, sequence: str, profile: ConservationProfile) -> str:
        profile_hash = hashlib.md5(profile.fingerprint().encode()).hexdigest()[:8]
        return f"{self.name}:{self.version}:{sequence_hash(sequence)}:{profile_hash}"

    @abstractmethod
    def _score_sequence_impl(
        self,
        sequence: str,
        profile: ConservationProfile,
    ) -> tuple[list[int], list[int], list[int]]:
        """
        Compute the three score tracks.

        Returns:
            Tuple of (sol, tmh, sig) integer lists
        """
        pass

    def score_sequence(self, sequence: str, profile: ConservationProfile) -> RawScores:
        """
        Score every residue of a sequence.

        Args:
            sequence: Protein sequence
            profile: Conservation profile of the same length

        Returns:
            RawScores

        Raises:
            OracleError: If scoring fails or produces malformed tracks
        """
        if self._cache is not None:
            key = self._get_cache_key(sequence, profile)
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug(f"{self.name}: Using cached scores for {sequence_hash(sequence)}")
                return cached

        try:
            sol, tmh, sig = self._score_sequence_impl(sequence, profile)
            scores = RawScores(
                sol=[int(v) for v in sol],
                tmh=[int(v) for v in tmh],
                sig=[int(v) for v in sig],
            )
        except OracleError:
            raise
        except Exception as e:
            raise OracleError(f"{self.name}: residue scoring failed: {e}") from e

        if len(scores) != len(sequence):
            raise OracleError(
                f"{self.name}: produced {len(scores)} scores for {len(sequence)} residues"
            )

        if self._cache is not None:
            self._cache.set(key, scores, expire=self.config.cache_ttl)

        return scores

    def clear_cache(self):
        """Clear the on-disk cache of this scorer."""
        if self._cache is not None:
            self._cache.clear()


class SegmentScorer(BaseOracle):
    """Scores a residue range as a whole: P(TMH) in [0, 1]."""

    role = OracleRole.SEGMENT

    @abstractmethod
    def _score_segment_impl(self, profile: ConservationProfile, start: int, end: int) -> float:
        pass

    def score_segment(self, profile: ConservationProfile, start: int, end: int) -> float:
        """
        P(TMH) of the closed range ``[start, end]``.

        Raises:
            OracleError: On an invalid range, a failing model, or a value
                outside [0, 1]
        """
        if start < 0 or end >= profile.length or start > end:
            raise OracleError(
                f"{self.name}: invalid segment {start}-{end} for length {profile.length}"
            )

        try:
            probability = float(self._score_segment_impl(profile, start, end))
        except OracleError:
            raise
        except Exception as e:
            raise OracleError(f"{self.name}: prediction failed for segment ({start}-{end}): {e}") from e

        if not 0.0 <= probability <= 1.0:
            raise OracleError(f"{self.name}: probability {probability} outside [0, 1]")

        return probability


class TopologyScorer(BaseOracle):
    """Scores membrane sidedness: P(Inside) for side A."""

    role = OracleRole.TOPOLOGY

    @abstractmethod
    def _score_sides_impl(
        self,
        profile: ConservationProfile,
        side_a: SideFeatures,
        side_b: SideFeatures,
    ) -> float:
        pass

    def score_sides(
        self,
        profile: ConservationProfile,
        side_a: SideFeatures,
        side_b: SideFeatures,
    ) -> float:
        """
        P(Inside) of side A given features of both sides.

        Raises:
            OracleError: On a failing model or a value outside [0, 1]
        """
        try:
            probability = float(self._score_sides_impl(profile, side_a, side_b))
        except OracleError:
            raise
        except Exception as e:
            raise OracleError(f"{self.name}: topology scoring failed: {e}") from e

        if not 0.0 <= probability <= 1.0:
            raise OracleError(f"{self.name}: probability {probability} outside [0, 1]")

        return probability


# Registry for available oracles
_ORACLE_REGISTRY: dict[str, type[BaseOracle]] = {}


def register_oracle(oracle_class: type[O]) -> type[O]:
    """
    Decorator to register an oracle class.

    Usage:
        @register_oracle
        class MyScorer(SegmentScorer):
            name = "MyScorer"
            ...
    """
    _ORACLE_REGISTRY[oracle_class.name] = oracle_class
    return oracle_class


def get_oracle(name: str, config: Optional[OracleConfig] = None) -> BaseOracle:
    """
    Get an oracle instance by name.

    Raises:
        KeyError: If no oracle with that name is registered
    """
    if name not in _ORACLE_REGISTRY:
        available = ", ".join(_ORACLE_REGISTRY.keys())
        raise KeyError(f"Oracle '{name}' not found. Available: {available}")

    return _ORACLE_REGISTRY[name](config)


def list_oracles(role: Optional[OracleRole] = None) -> list[dict[str, Any]]:
    """
    List registered oracles that can be built without arguments.

    Args:
        role: Only list oracles of this role
    """
    infos = []
    for cls in _ORACLE_REGISTRY.values():
        if role is not None and cls.role is not role:
            continue
        infos.append(cls(OracleConfig(use_cache=False)).get_info())
    return infos
