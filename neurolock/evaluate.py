#!/usr/bin/env python3
"""
Evaluation of the authentication threshold.

Enrolls a population of simulated subjects, scores genuine attempts (same
subject) and impostor attempts (other subjects) against each template, and
reports:
- ROC curve, AUC and equal error rate
- False accept / false reject rates at the configured threshold
- Score distribution plots (optional)
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.metrics import auc, roc_curve

from neurolock.capture import CaptureSession, SimulatedHeadset
from neurolock.config import MentalTask, NeuroLockConfig
from neurolock.extraction import extract_features
from neurolock.similarity import similarity
from neurolock.template import build_template

logger = logging.getLogger(__name__)


# ============================================================================
# Score computation
# ============================================================================

def record_vectors(subject: str, count: int, config: NeuroLockConfig,
                   task: MentalTask = MentalTask.EYES_CLOSED_REST,
                   seed: Optional[int] = None) -> list:
    """Record and extract count feature vectors for one simulated subject."""
    source = SimulatedHeadset(subject=subject, seed=seed)
    with CaptureSession(f"sim-{subject}", source=source, config=config) as session:
        vectors = []
        for _ in range(count):
            sample = session.record(task=task)
            vectors.append(extract_features(sample))
            sample.wipe()
    return vectors


def compute_genuine_impostor_scores(
    subjects: Sequence[str],
    config: NeuroLockConfig,
    probes_per_subject: int = 5,
    task: MentalTask = MentalTask.EYES_CLOSED_REST,
    seed: int = 0,
) -> Tuple[List[float], List[float]]:
    """
    Score every subject's probes against every subject's template.

    Args:
        subjects: Simulated subject names
        config: Configuration (enrolment trials, capture settings)
        probes_per_subject: Fresh recordings per subject used as probes
        task: Mental task for enrolment and probes
        seed: Base seed for the simulated recordings

    Returns:
        Tuple of (genuine_scores, impostor_scores)
    """
    templates = {}
    probes = {}
    for i, subject in enumerate(subjects):
        trials = record_vectors(subject, config.enrolment_trials, config, task, seed + 2 * i)
        templates[subject] = build_template(subject, trials, task, config)
        for v in trials:
            v.wipe()
        probes[subject] = record_vectors(subject, probes_per_subject, config, task, seed + 2 * i + 1)

    genuine_scores = []
    impostor_scores = []
    for owner, template in templates.items():
        for subject, vectors in probes.items():
            scores = [similarity(v, template.feature_vector) for v in vectors]
            if subject == owner:
                genuine_scores.extend(scores)
            else:
                impostor_scores.extend(scores)

    for template in templates.values():
        template.wipe()
    for vectors in probes.values():
        for v in vectors:
            v.wipe()

    logger.info("Computed %d genuine and %d impostor scores",
                len(genuine_scores), len(impostor_scores))
    return genuine_scores, impostor_scores


# ============================================================================
# ROC and metrics
# ============================================================================

def error_rates(genuine_scores: Sequence[float], impostor_scores: Sequence[float],
                threshold: float) -> Dict[str, float]:
    """False accept and false reject rates at a threshold (accept: score >= threshold)."""
    genuine = np.asarray(genuine_scores, dtype=float)
    impostor = np.asarray(impostor_scores, dtype=float)
    far = float(np.mean(impostor >= threshold)) if impostor.size else 0.0
    frr = float(np.mean(genuine < threshold)) if genuine.size else 0.0
    return {"threshold": float(threshold), "far": far, "frr": frr}


def compute_roc_metrics(genuine_scores: List[float],
                        impostor_scores: List[float],
                        threshold: float) -> Dict[str, float]:
    """
    Compute AUC, equal error rate and error rates at the threshold.

    Args:
        genuine_scores: Same-subject similarity scores
        impostor_scores: Cross-subject similarity scores
        threshold: Operating threshold to report FAR/FRR at

    Returns:
        Dictionary with auc, eer, eer_threshold, far, frr, threshold
    """
    if not genuine_scores or not impostor_scores:
        raise ValueError("Both genuine and impostor scores are required")

    y_true = np.concatenate([
        np.ones(len(genuine_scores)),
        np.zeros(len(impostor_scores))
    ])
    y_scores = np.array(list(genuine_scores) + list(impostor_scores))

    fpr, tpr, thresholds = roc_curve(y_true, y_scores)
    roc_auc = auc(fpr, tpr)

    # Equal error rate: where FAR and FRR (1 - TPR) cross
    fnr = 1 - tpr
    idx = int(np.nanargmin(np.abs(fnr - fpr)))
    eer = float((fpr[idx] + fnr[idx]) / 2)

    metrics = {
        "auc": float(roc_auc),
        "eer": eer,
        "eer_threshold": float(min(thresholds[idx], 1.0)),
    }
    metrics.update(error_rates(genuine_scores, impostor_scores, threshold))
    return metrics


def plot_scores(genuine_scores: List[float], impostor_scores: List[float],
                threshold: float, output_dir: Path) -> Path:
    """Save a histogram of genuine and impostor scores with the threshold marked."""
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    output_dir.mkdir(parents=True, exist_ok=True)
    plt.figure(figsize=(10, 5))
    bins = np.linspace(0, 1, 51)
    plt.hist(genuine_scores, bins=bins, alpha=0.6, label='Genuine', color='green')
    plt.hist(impostor_scores, bins=bins, alpha=0.6, label='Impostor', color='red')
    plt.axvline(threshold, color='k', linestyle='--', label=f'Threshold = {threshold:.2f}')
    plt.xlabel('Similarity Score', fontsize=12)
    plt.ylabel('Frequency', fontsize=12)
    plt.title('Score Distributions', fontsize=14)
    plt.legend(fontsize=10)
    plt.grid(True, alpha=0.3)
    plt.tight_layout()

    dist_plot = output_dir / "score_distributions.png"
    plt.savefig(dist_plot, dpi=150)
    plt.close()
    return dist_plot


# ============================================================================
# Main evaluation
# ============================================================================

def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Evaluate the authentication threshold")
    parser.add_argument('--subjects', type=int, default=10,
                        help='Number of simulated subjects (default: 10)')
    parser.add_argument('--probes', type=int, default=5,
                        help='Probe recordings per subject (default: 5)')
    parser.add_argument('--threshold', type=float, help='Threshold to report FAR/FRR at')
    parser.add_argument('--seed', type=int, default=0, help='Base seed for recordings')
    parser.add_argument('--out', type=str, help='Directory for metrics.json and plots')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    config = NeuroLockConfig.from_env().with_overrides(threshold=args.threshold)

    subjects = [f"subject{i:02d}" for i in range(args.subjects)]
    genuine_scores, impostor_scores = compute_genuine_impostor_scores(
        subjects, config, probes_per_subject=args.probes, seed=args.seed
    )
    metrics = compute_roc_metrics(genuine_scores, impostor_scores, config.threshold)

    print("=" * 60)
    print("Threshold evaluation")
    print("=" * 60)
    print(f"AUC: {metrics['auc']:.4f}")
    print(f"EER: {metrics['eer']:.4f} (threshold {metrics['eer_threshold']:.4f})")
    print(f"At threshold {metrics['threshold']:.2f}: "
          f"FAR = {metrics['far']:.4f}, FRR = {metrics['frr']:.4f}")

    if args.out:
        output_dir = Path(args.out)
        output_dir.mkdir(parents=True, exist_ok=True)
        metrics_file = output_dir / "metrics.json"
        metrics_file.write_text(json.dumps(metrics, indent=2))
        plot = plot_scores(genuine_scores, impostor_scores, config.threshold, output_dir)
        print(f"Metrics saved to: {metrics_file}")
        print(f"Distribution plot saved to: {plot}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
