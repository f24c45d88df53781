"""
Null models mapping smoothed scores to p-values.

Two estimators are provided:

- from_replicate_pool: an empirical null built from the pooled smoothed scores
  of reference-vs-reference comparisons. The p-value of an observed score is
  1 - ECDF(score).
- from_mixture_fit: used when no replicate reference data exists. Scores in
  (0, 1) are logit transformed and a two-component Gaussian mixture is fit by
  EM. One component is taken as the null population and the p-value of a
  score is the upper tail of the corresponding logit-normal distribution.

Both models share the NullModel interface; callers should not need to know
which variant they hold.
"""

import logging
import warnings
from typing import Any, Dict, Iterable, Tuple, Union

import numpy as np
from scipy.special import logit
from scipy.stats import norm
from sklearn.exceptions import ConvergenceWarning
from sklearn.mixture import GaussianMixture
from statsmodels.distributions.empirical_distribution import ECDF

from infodmr.exceptions import FitFailure, InputShapeError
from infodmr.signal import IntervalSignal

logger = logging.getLogger(__name__)

MACHINE_EPSILON = np.finfo(float).eps

# Fixed EM starting point in logit space. The likelihood is not convex, so the
# starting point decides which local optimum is reached.
MIXTURE_INITIAL_MEANS = (-2.0, 0.0)
MIXTURE_INITIAL_SDS = (0.5, 0.5)
MIXTURE_INITIAL_WEIGHTS = (0.5, 0.5)
MIXTURE_MAX_ITER = 1000
MIXTURE_TOL = 1e-8


def floor_pvalues(p_values: np.ndarray) -> np.ndarray:
    """Floor p-values at machine epsilon, leaving NaN untouched."""
    p_values = np.asarray(p_values, dtype=float)
    return np.where(p_values < MACHINE_EPSILON, MACHINE_EPSILON, p_values)


class NullModel:
    """Maps scores to p-values in [machine epsilon, 1]."""

    kind = 'abstract'

    def _upper_tail(self, values: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def pvalues(self, values: Union[Iterable[float], np.ndarray]) -> np.ndarray:
        """
        Compute p-values for a batch of scores.

        Args:
            values: Scores to evaluate

        Returns:
            numpy.ndarray: P-values, NaN for NaN scores
        """
        values = np.asarray(values, dtype=float)
        p_values = self._upper_tail(values)
        p_values = np.where(np.isnan(values), np.nan, p_values)
        return floor_pvalues(p_values)

    def __call__(self, x):
        p_values = self.pvalues(np.atleast_1d(x))
        return float(p_values[0]) if np.ndim(x) == 0 else p_values

    def describe(self) -> Dict[str, Any]:
        return {'kind': self.kind}


class EmpiricalNullModel(NullModel):
    """Null model from the empirical distribution of pooled null scores."""

    kind = 'empirical'

    def __init__(self, null_scores: np.ndarray):
        null_scores = np.sort(np.asarray(null_scores, dtype=float))
        null_scores.setflags(write=False)
        self.null_scores = null_scores
        self._ecdf = ECDF(null_scores)

    def _upper_tail(self, values: np.ndarray) -> np.ndarray:
        return 1.0 - self._ecdf(values)

    def describe(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'pool_size': len(self.null_scores),
            'pool_min': float(self.null_scores[0]),
            'pool_max': float(self.null_scores[-1]),
        }


class MixtureNullModel(NullModel):
    """
    Logit-normal null model selected from a two-component Gaussian mixture.

    Scores >= 1 cannot be logit transformed; in a batch they take the smallest
    p-value of the batch's other scores. Scores <= 0 get a p-value of 1.
    """

    kind = 'mixture'

    def __init__(self, component_means: Tuple[float, float], component_sds: Tuple[float, float],
                 converged: bool, n_iter: int = 0):
        self.component_means = tuple(float(mean) for mean in component_means)
        self.component_sds = tuple(float(sd) for sd in component_sds)
        self.converged = bool(converged)
        self.n_iter = int(n_iter)
        self.null_mean, self.null_sd = select_null_component(self.component_means, self.component_sds,
                                                             self.converged)

    def _upper_tail(self, values: np.ndarray) -> np.ndarray:
        in_domain = (values > 0) & (values < 1)
        p_values = np.full(values.shape, np.nan)
        p_values[in_domain] = norm.sf(logit(values[in_domain]), loc=self.null_mean, scale=self.null_sd)
        return p_values

    def pvalues(self, values: Union[Iterable[float], np.ndarray]) -> np.ndarray:
        values = np.asarray(values, dtype=float)
        p_values = super().pvalues(values)

        upper_boundary = values >= 1
        lower_boundary = values <= 0
        if upper_boundary.any():
            interior = p_values[~upper_boundary & ~lower_boundary & ~np.isnan(p_values)]
            p_values[upper_boundary] = interior.min() if len(interior) else MACHINE_EPSILON
        p_values[lower_boundary] = 1.0
        return p_values

    def describe(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'component_means': self.component_means,
            'component_sds': self.component_sds,
            'converged': self.converged,
            'n_iter': self.n_iter,
            'null_mean': self.null_mean,
            'null_sd': self.null_sd,
        }


def select_null_component(means: Tuple[float, float], sds: Tuple[float, float],
                          converged: bool) -> Tuple[float, float]:
    """
    Choose the null (mean, sd) from a fitted two-component mixture.

    A converged fit uses the component with the smaller mean. An unconverged
    fit takes the larger mean and, independently, the larger standard
    deviation, which may come from different components and widens the null.

    Args:
        means: Component means in logit space
        sds: Component standard deviations in logit space
        converged: Whether EM stopped before the iteration cap

    Returns:
        tuple: (null_mean, null_sd)
    """
    if not converged:
        return max(means), max(sds)
    null_index = 0 if means[0] < means[1] else 1
    return means[null_index], sds[null_index]


def _pool_scores(null_scores: Iterable[Union[IntervalSignal, np.ndarray, Iterable[float]]]) -> np.ndarray:
    arrays = []
    for scores in null_scores:
        if isinstance(scores, IntervalSignal):
            scores = scores.values
        arrays.append(np.asarray(scores, dtype=float).ravel())
    if not arrays:
        return np.zeros(0)
    pooled = np.concatenate(arrays)
    return pooled[np.isfinite(pooled)]


def from_replicate_pool(null_scores: Iterable[Union[IntervalSignal, np.ndarray, Iterable[float]]]) -> EmpiricalNullModel:
    """
    Build an empirical null model from pooled reference-vs-reference scores.

    Args:
        null_scores: One or more smoothed null signals or score arrays, pooled in order

    Returns:
        EmpiricalNullModel: Model computing 1 - ECDF(score)

    Raises:
        InputShapeError: If the pool contains no finite scores
    """
    pooled = _pool_scores(null_scores)
    if len(pooled) == 0:
        raise InputShapeError("Cannot build an empirical null model from an empty pool")
    model = EmpiricalNullModel(pooled)
    logger.info("Built empirical null model from %d pooled scores", len(pooled))
    logger.debug("Null model: %s", model.describe())
    return model


def from_mixture_fit(scores: Union[IntervalSignal, np.ndarray, Iterable[float]],
                     max_iter: int = MIXTURE_MAX_ITER, tol: float = MIXTURE_TOL) -> MixtureNullModel:
    """
    Fit a two-component Gaussian mixture to logit-transformed scores.

    Scores outside the open interval (0, 1) and non-finite scores are excluded
    from the fit.

    Args:
        scores: Smoothed scores of the test sample
        max_iter: EM iteration cap; reaching it counts as non-convergence
        tol: EM stopping tolerance on the change in total log-likelihood

    Returns:
        MixtureNullModel: Fitted null model

    Raises:
        FitFailure: If fewer than two distinct usable values remain or EM fails
    """
    if isinstance(scores, IntervalSignal):
        scores = scores.values
    scores = np.asarray(scores, dtype=float).ravel()
    usable = scores[np.isfinite(scores) & (scores > 0) & (scores < 1)]
    if len(np.unique(usable)) < 2:
        raise FitFailure(f"Mixture fit needs at least 2 distinct scores in (0, 1), got {len(np.unique(usable))}")

    logit_scores = logit(usable).reshape(-1, 1)
    logger.info("Fitting logit-space mixture to %d of %d scores", len(usable), len(scores))

    mixture = GaussianMixture(
        n_components=2,
        covariance_type='spherical',
        weights_init=np.array(MIXTURE_INITIAL_WEIGHTS),
        means_init=np.array(MIXTURE_INITIAL_MEANS).reshape(-1, 1),
        precisions_init=1.0 / np.square(MIXTURE_INITIAL_SDS),
        max_iter=max_iter,
        # GaussianMixture measures the change in the per-sample lower bound
        tol=tol / len(usable),
        random_state=0,
    )
    try:
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', ConvergenceWarning)
            mixture.fit(logit_scores)
    except ValueError as e:
        raise FitFailure(f"Mixture fit failed: {e}") from e

    means = tuple(mixture.means_[:, 0])
    sds = tuple(np.sqrt(mixture.covariances_))
    if not mixture.converged_:
        logger.warning("Mixture fit did not converge in %d iterations, using conservative null", max_iter)

    model = MixtureNullModel(means, sds, converged=mixture.converged_, n_iter=mixture.n_iter_)
    logger.info("Mixture null component: mean=%.4f sd=%.4f", model.null_mean, model.null_sd)
    logger.debug("Null model: %s", model.describe())
    return model
