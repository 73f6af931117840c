"""Batch provisioning workflow.

Runs a permission self-check with disposable probe objects, then walks the
operator through N users: attribute intake, duplicate check, creation and
group linking, one user at a time.  A failure for one user never stops the
batch; every requested index ends with exactly one ``ProvisionOutcome``.

Entry point: ``dirbatch.provision.runner.BatchRunner.execute()``
"""
