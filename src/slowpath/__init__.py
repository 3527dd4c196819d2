"""slowpath — static detection of async-correctness and hot-loop performance defects."""

__version__ = "0.1.0"
