"""Clustering quality metrics.

Provides metrics for:
- EVA / LEVA - combinatorial validity of a supervised clustering
- ARI - adjusted Rand index, by clusters and by predicted classes
- NMI - normalized mutual information, by clusters and by predicted classes
- Variation of information
- Davies-Bouldin index, globally and per attribute
- Predictive clustering index
- Huygens theorem self-check (L2 only)

The table functions are pure: they take contingency tables
(rows = clusters or predicted classes, columns = actual classes).
ClusteringQuality builds those tables from a finished clustering.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Sequence

import numpy as np
from scipy.special import gammaln

from ..config import DistanceNorm
from ..monitor import Diagnostics
from .cluster import Cluster
from .distance import distance, similarity
from .instances import InstanceSet


logger = logging.getLogger(__name__)


@dataclass
class QualityReport:
    """Cached quality values of a clustering.

    Inapplicable metrics stay at 0.

    Attributes:
        eva: Normalized EVA (higher is better).
        leva: Normalized LEVA (higher is better).
        ari_by_clusters: ARI between clusters and actual classes.
        ari_by_classes: ARI between predicted and actual classes.
        nmi_by_clusters: NMI between clusters and actual classes.
        nmi_by_classes: NMI between predicted and actual classes.
        davies_bouldin: Davies-Bouldin index (lower is better).
        variation_of_information: Normalized VI (lower is better).
        predictive_clustering: Predictive clustering index (lower is better).
        attribute_davies_bouldin: Davies-Bouldin index per attribute.
    """
    eva: float = 0.0
    leva: float = 0.0
    ari_by_clusters: float = 0.0
    ari_by_classes: float = 0.0
    nmi_by_clusters: float = 0.0
    nmi_by_classes: float = 0.0
    davies_bouldin: float = 0.0
    variation_of_information: float = 0.0
    predictive_clustering: float = 0.0
    attribute_davies_bouldin: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    def copy(self) -> "QualityReport":
        return QualityReport(**{**asdict(self), "attribute_davies_bouldin": list(self.attribute_davies_bouldin)})


# ============================================================================
# Combinatorics
# ============================================================================

def ln_factorial(n) -> float:
    """Natural log of n!."""
    return float(gammaln(np.asarray(n, dtype=float) + 1.0))


def pairs_count(n: float) -> float:
    """n choose 2, through log-factorials (0 for n <= 1)."""
    if n <= 1:
        return 0.0
    return float(np.exp(ln_factorial(n) - ln_factorial(2) - ln_factorial(n - 2)))


# ============================================================================
# EVA / LEVA
# ============================================================================

def eva_first_term(n: int, k: int) -> float:
    """log N + ln(N+K-1)! - ln K! - ln(N-1)!"""
    return float(np.log(n) + ln_factorial(n + k - 1) - ln_factorial(k) - ln_factorial(n - 1))


def eva_second_term(row_totals: Sequence[int], n_classes: int) -> float:
    """Sum over non-empty rows of ln(Nk+J-1)! - ln(J-1)! - ln Nk!"""
    result = 0.0
    for nk in row_totals:
        if nk == 0:
            continue
        result += ln_factorial(nk + n_classes - 1) - ln_factorial(n_classes - 1) - ln_factorial(nk)
    return result


def eva_third_term(counts: np.ndarray) -> float:
    """Sum over non-empty rows of ln Nk! - sum_j ln Nkj!"""
    result = 0.0
    for row in np.atleast_2d(counts):
        nk = int(row.sum())
        if nk == 0:
            continue
        result += ln_factorial(nk) - sum(ln_factorial(int(c)) for c in row)
    return result


def eva_single_cluster(class_counts: Sequence[int]) -> float:
    """Closed form of the EVA cost for one cluster holding everything."""
    class_counts = np.asarray(class_counts, dtype=int)
    n = int(class_counts.sum())
    j = len(class_counts)
    result = np.log(n) + ln_factorial(n) - ln_factorial(n - 1) + ln_factorial(n + j - 1) - ln_factorial(j - 1)
    for nj in class_counts:
        result -= ln_factorial(int(nj))
    return float(result)


def eva_cost(counts: np.ndarray) -> float:
    """Unnormalized EVA cost of an integer (K x J) table.

    Empty rows are ignored; K is the number of non-empty rows.
    """
    counts = np.atleast_2d(np.asarray(counts, dtype=int))
    row_totals = counts.sum(axis=1)
    k = int(np.count_nonzero(row_totals))
    if k == 1:
        return eva_single_cluster(counts.sum(axis=0))
    n = int(row_totals.sum())
    return eva_first_term(n, k) + eva_second_term(row_totals, counts.shape[1]) + eva_third_term(counts)


def leva_cost(counts: np.ndarray) -> float:
    """Unnormalized LEVA cost: the last EVA term only."""
    counts = np.atleast_2d(np.asarray(counts, dtype=int))
    row_totals = counts.sum(axis=1)
    if np.count_nonzero(row_totals) == 1:
        class_counts = counts.sum(axis=0)
        return ln_factorial(int(class_counts.sum())) - sum(ln_factorial(int(c)) for c in class_counts)
    return eva_third_term(counts)


def normalized_eva(counts: np.ndarray) -> float:
    """1 - EVA(K) / EVA(1), 0 when the baseline vanishes."""
    counts = np.atleast_2d(np.asarray(counts, dtype=int))
    if counts.size == 0 or counts.sum() == 0:
        return 0.0
    baseline = eva_single_cluster(counts.sum(axis=0))
    if baseline == 0:
        return 0.0
    return 1.0 - eva_cost(counts) / baseline


def normalized_leva(counts: np.ndarray) -> float:
    """1 - LEVA(K) / LEVA(1), 0 when the baseline vanishes."""
    counts = np.atleast_2d(np.asarray(counts, dtype=int))
    if counts.size == 0 or counts.sum() == 0:
        return 0.0
    baseline = leva_cost(counts.sum(axis=0, keepdims=True))
    if baseline == 0:
        return 0.0
    return 1.0 - leva_cost(counts) / baseline


# ============================================================================
# Partition agreement
# ============================================================================

def adjusted_rand_index(table: np.ndarray, n: Optional[int] = None) -> float:
    """Adjusted Rand index of a contingency table.

    Args:
        table: Integer frequencies (rows x columns).
        n: Population size, defaults to the table total.

    Returns:
        ARI, or 0 when undefined.
    """
    table = np.atleast_2d(np.rint(np.asarray(table, dtype=float)))
    if n is None:
        n = int(table.sum())
    if n < 2:
        return 0.0

    a = sum(pairs_count(cell) for cell in table.ravel() if cell > 1)
    b1 = sum(pairs_count(total) for total in table.sum(axis=1) if total > 1)
    b2 = sum(pairs_count(total) for total in table.sum(axis=0) if total > 1)
    c = pairs_count(n)
    if c == 0:
        return 0.0
    expected = b1 * b2 / c
    denominator = 0.5 * (b1 + b2) - expected
    if denominator == 0:
        return 0.0
    return float((a - expected) / denominator)


def normalized_mutual_information(table: np.ndarray, n: Optional[float] = None) -> float:
    """Normalized mutual information of a contingency table.

    NMI = sum Pij log(Pij / (Pi+ P+j)) / sqrt(sum Pi+ log Pi+ * sum P+j log P+j)
    """
    table = np.atleast_2d(np.asarray(table, dtype=float))
    if n is None:
        n = table.sum()
    if n == 0:
        return 0.0
    p = table / n
    p_rows = p.sum(axis=1)
    p_cols = p.sum(axis=0)

    a = 0.0
    for i in range(p.shape[0]):
        for j in range(p.shape[1]):
            if p_rows[i] != 0 and p_cols[j] != 0 and p[i, j] != 0:
                a += p[i, j] * np.log(p[i, j] / (p_rows[i] * p_cols[j]))

    b1 = sum(x * np.log(x) for x in p_rows if x != 0)
    b2 = sum(x * np.log(x) for x in p_cols if x > 0)
    b = np.sqrt(b1 * b2)
    return float(a / b) if b != 0 else 0.0


def _entropy(frequencies: np.ndarray, n: float) -> float:
    p = np.asarray(frequencies, dtype=float).ravel() / n
    p = p[p > 0]
    return float(-(p * np.log(p)).sum())


def variation_of_information(
    table: np.ndarray,
    n: Optional[float] = None,
    row_totals: Optional[Sequence[float]] = None,
) -> float:
    """Normalized variation of information: 2 H(K,C) / (H(K) + H(C)) - 1.

    Args:
        table: Frequencies (clusters x classes).
        n: Population size, defaults to the table total.
        row_totals: Cluster frequencies, defaults to the row sums.
    """
    table = np.atleast_2d(np.rint(np.asarray(table, dtype=float)))
    if n is None:
        n = table.sum()
    if n == 0:
        return 0.0
    if row_totals is None:
        row_totals = table.sum(axis=1)

    h_k = _entropy(row_totals, n)
    h_c = _entropy(table.sum(axis=0), n)
    h_kc = _entropy(table, n)
    if h_k + h_c == 0:
        return 0.0
    return 2.0 * h_kc / (h_k + h_c) - 1.0


# ============================================================================
# ClusteringQuality
# ============================================================================

class ClusteringQuality:
    """Computes and caches quality metrics of a finished clustering.

    Attributes:
        clusters: Clusters of the clustering.
        global_cluster: Cluster spanning the whole dataset.
        catalog: Target value catalog.
        norm: Active distance norm.
        report: Cached values.
    """

    def __init__(
        self,
        clusters: List[Cluster],
        global_cluster: Cluster,
        catalog: Sequence[str],
        norm: DistanceNorm = DistanceNorm.L2,
        diagnostics: Optional[Diagnostics] = None,
        report: Optional[QualityReport] = None,
    ):
        self.clusters = clusters
        self.global_cluster = global_cluster
        self.catalog = list(catalog)
        self.norm = norm
        self.diagnostics = diagnostics or Diagnostics(__name__)
        self.report = report or QualityReport()

    @property
    def n_total(self) -> int:
        """Population size: the global cluster frequency."""
        return self.global_cluster.frequency

    # ── Tables ──────────────────────────────────────────────────

    def contingency_table(self) -> np.ndarray:
        """Frequencies by cluster and target value (freq x prob)."""
        j = len(self.catalog)
        table = np.zeros((len(self.clusters), j))
        for i, cluster in enumerate(self.clusters):
            if cluster.frequency > 0:
                m = min(j, cluster.target_probs.size)
                table[i, :m] = cluster.frequency * cluster.target_probs[:m]
        return table

    def class_counts(self, metric: str = "EVA") -> Optional[np.ndarray]:
        """Integer table Nkj = int(p * Nk + 0.5).

        Returns None, after a warning, when a row does not add up to
        its cluster frequency (target values unknown to the catalog).
        """
        table = self.contingency_table()
        counts = (table + 0.5).astype(int)
        for i, cluster in enumerate(self.clusters):
            if cluster.frequency == 0:
                continue
            if int(counts[i].sum()) != cluster.frequency:
                self.diagnostics.add_warning(
                    f"{metric} computing on cluster {i} : unreferenced target values "
                    f"have been detected. Setting {metric} to zero."
                )
                return None
        return counts

    def global_target_probs(self) -> np.ndarray:
        """Dataset-wide target probabilities derived from the clusters."""
        if self.n_total == 0:
            return np.zeros(len(self.catalog))
        return self.contingency_table().sum(axis=0) / self.n_total

    # ── EVA / LEVA ──────────────────────────────────────────────

    def compute_eva(self) -> float:
        self.report.eva = 0.0
        if not self.catalog or self.n_total == 0:
            return 0.0
        counts = self.class_counts("EVA")
        if counts is not None:
            self.report.eva = normalized_eva(counts)
        return self.report.eva

    def compute_leva(self) -> float:
        self.report.leva = 0.0
        if not self.catalog or self.n_total == 0:
            return 0.0
        counts = self.class_counts("LEVA")
        if counts is not None:
            self.report.leva = normalized_leva(counts)
        return self.report.leva

    # ── ARI / NMI / VI ──────────────────────────────────────────

    def compute_ari_by_clusters(self) -> float:
        self.report.ari_by_clusters = 0.0
        if self.catalog and self.clusters:
            self.report.ari_by_clusters = adjusted_rand_index(self.contingency_table(), self.n_total)
        return self.report.ari_by_clusters

    def compute_ari_by_classes(self, confusion: np.ndarray) -> float:
        """ARI between predicted (rows) and actual (columns) classes."""
        self.report.ari_by_classes = 0.0
        if confusion is not None and confusion.size:
            self.report.ari_by_classes = adjusted_rand_index(confusion, self.n_total)
        return self.report.ari_by_classes

    def compute_nmi_by_clusters(self) -> float:
        self.report.nmi_by_clusters = 0.0
        if self.catalog and self.clusters and self.n_total:
            self.report.nmi_by_clusters = normalized_mutual_information(self.contingency_table(), self.n_total)
        return self.report.nmi_by_clusters

    def compute_nmi_by_classes(self, confusion: np.ndarray) -> float:
        self.report.nmi_by_classes = 0.0
        if confusion is not None and confusion.size and self.n_total:
            self.report.nmi_by_classes = normalized_mutual_information(confusion, self.n_total)
        return self.report.nmi_by_classes

    def compute_variation_of_information(self) -> float:
        self.report.variation_of_information = 0.0
        if self.catalog and self.clusters and self.n_total:
            frequencies = [c.frequency for c in self.clusters]
            self.report.variation_of_information = variation_of_information(
                self.contingency_table(), self.n_total, frequencies,
            )
        return self.report.variation_of_information

    # ── Geometry ────────────────────────────────────────────────

    def _centroid(self, cluster: Cluster, use_evaluation_centroids: bool) -> np.ndarray:
        if use_evaluation_centroids and cluster.evaluation_centroid is not None:
            return cluster.evaluation_centroid
        return cluster.centroid

    def compute_davies_bouldin(self, use_evaluation_centroids: bool = False) -> float:
        """Mean over clusters of the worst (intra_i + intra_j) / inter_ij ratio.

        Empty clusters are skipped in both loops but still count in the
        final division.
        """
        self.report.davies_bouldin = 0.0
        if not self.clusters:
            return 0.0
        total = 0.0
        for ci in self.clusters:
            if ci.frequency == 0:
                continue
            worst = 0.0
            for cj in self.clusters:
                if cj is ci or cj.frequency == 0:
                    continue
                inter = distance(
                    self._centroid(ci, use_evaluation_centroids),
                    self._centroid(cj, use_evaluation_centroids),
                    DistanceNorm.L2,
                )
                if inter == 0:
                    continue
                ratio = (np.sqrt(ci.inertia[self.norm]) + np.sqrt(cj.inertia[self.norm])) / np.sqrt(inter)
                worst = max(worst, ratio)
            total += worst
        self.report.davies_bouldin = float(total / len(self.clusters))
        return self.report.davies_bouldin

    def compute_attribute_davies_bouldin(self) -> List[float]:
        """Davies-Bouldin index restricted to each attribute."""
        self.report.attribute_davies_bouldin = []
        if not self.clusters:
            return []
        n_features = self.clusters[0].n_features
        values = np.zeros(n_features)
        for attribute in range(n_features):
            total = 0.0
            for ci in self.clusters:
                if ci.frequency == 0:
                    continue
                worst = 0.0
                for cj in self.clusters:
                    if cj is ci or cj.frequency == 0:
                        continue
                    inter = (ci.centroid[attribute] - cj.centroid[attribute]) ** 2
                    if inter == 0:
                        continue
                    intra_i = ci.attribute_inertia.get(self.norm, np.zeros(n_features))[attribute]
                    intra_j = cj.attribute_inertia.get(self.norm, np.zeros(n_features))[attribute]
                    worst = max(worst, (np.sqrt(intra_i) + np.sqrt(intra_j)) / np.sqrt(inter))
                total += worst
            values[attribute] = total / len(self.clusters)
        self.report.attribute_davies_bouldin = [float(v) for v in values]
        return self.report.attribute_davies_bouldin

    def compute_predictive_clustering(self, use_evaluation_centroids: bool = False) -> float:
        """Mean over clusters of max_j (compactness_i + compactness_j) / similarity_ij."""
        self.report.predictive_clustering = 0.0
        if not self.clusters:
            return 0.0
        total = 0.0
        for ci in self.clusters:
            majority_i = ci.majority_value(self.catalog)
            worst = 0.0
            for cj in self.clusters:
                if cj is ci:
                    continue
                sim = similarity(
                    self._centroid(ci, use_evaluation_centroids),
                    self._centroid(cj, use_evaluation_centroids),
                    majority_i,
                    cj.majority_value(self.catalog),
                    self.norm,
                )
                ratio = 0.0 if sim == 0 else (ci.compactness + cj.compactness) / sim
                worst = max(worst, ratio)
            total += worst
        self.report.predictive_clustering = float(total / len(self.clusters))
        return self.report.predictive_clustering

    def mean_distance(self) -> float:
        """Sum of cluster distance sums divided by the total frequency."""
        frequency = sum(c.frequency for c in self.clusters)
        if frequency == 0:
            return 0.0
        return sum(c.distance_sums[self.norm] for c in self.clusters) / frequency

    # ── Huygens ─────────────────────────────────────────────────

    def check_huygens(self, instances: InstanceSet, tolerance: float = 0.01) -> bool:
        """Check total inertia = sum of intra and inter inertia (L2).

        Args:
            instances: Instance arena the clusters refer to.
            tolerance: Allowed relative gap.

        Returns:
            True when the decomposition holds within tolerance.
        """
        if not self.clusters:
            return False
        g = self.global_cluster.centroid
        total = 0.0
        sum_inertia = 0.0
        for cluster in self.clusters:
            if not cluster.members:
                continue
            vectors = instances.vectors[cluster.member_ids()]
            intra = float(((vectors - cluster.centroid) ** 2).sum())
            total += float(((vectors - g) ** 2).sum())
            inter = cluster.frequency * float(((cluster.centroid - g) ** 2).sum())
            sum_inertia += intra + inter
        if abs(sum_inertia - total) > sum_inertia * tolerance:
            logger.debug(
                "Inerties sum = %f, total inerty = %f, difference = %f",
                sum_inertia, total, abs(sum_inertia - total),
            )
            return False
        return True
