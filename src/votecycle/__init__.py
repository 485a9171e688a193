"""votecycle — role-gated, single-cycle voting workflow engine."""

__version__ = "0.1.0"
