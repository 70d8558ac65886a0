# NeuroLock - Brainwave Template Authentication Library
"""
NeuroLock: salted, non-reversible EEG templates and similarity-based
authentication.

Modules:
    template: Template records built by averaging enrolment trials
    hashing: Salted digests, constant-time comparison
    similarity: Cosine similarity engine
    auth: Authentication decision
    store: Binary template store
    pipeline: Enrolment and authentication flows
    capture: Capture sessions (simulated headset)
    extraction: Band-power feature extraction
    cli: Command-line interface
    evaluate: Threshold evaluation and metrics
"""

__version__ = "0.1.0"
