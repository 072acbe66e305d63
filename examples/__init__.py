"""
Koii Python SDK examples.

Each script can be run from the repository root, for example::

    python -m examples.recover_wallet "neglect trigger better ..."
    python -m examples.transfer
    python -m examples.create_task ./id.json
    python -m examples.arweave_payload

Endpoints and the payer keypair are read from environment variables; see
:mod:`examples.common`. All examples default to test networks.
"""
