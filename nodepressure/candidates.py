"""
Candidate set construction.

Responsibilities:
- Wrap each pod of a snapshot in a PodCandidate with a neutral score.

Non-Responsibilities:
- No filtering. Pods that will be vetoed stay in the set so their
  penalties show up in the ranking diagnostics.
- No scoring.

Invariant:
Output order matches input order, one candidate per pod.
"""

from typing import Iterable, List

from .models import PodCandidate, PodDescriptor


def candidates_from_pods(pods: Iterable[PodDescriptor]) -> List[PodCandidate]:
    return [PodCandidate(pod=pod, score=0) for pod in pods]
