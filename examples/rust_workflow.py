# rust_workflow.py
# Format and lint gates for a Rust crate, run on every push and pull request.
from __future__ import annotations

from gaterunner import cargo, job, provision, toolchain, wf


def workflow():
    return wf(
        job(
            "rustfmt",
            provision(),
            cargo("fmt", "--all", "--", "--check"),
            toolchain=toolchain("nightly", "rustfmt"),
        ),
        job(
            "clippy",
            provision(),
            # stricter mode would be cargo("clippy", "--", "-D", "warnings"); not enabled
            cargo("clippy"),
            toolchain=toolchain("stable", "clippy"),
        ),
        on=["push", "pull_request"],
        name="rust",
    )
