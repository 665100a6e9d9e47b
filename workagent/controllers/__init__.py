"""Reconcilers for Work and AppliedWork objects.

Submodules:
    resolver      -- manifest decoding and kind resolution.
    apply         -- apply engine and the hub-triggered apply controller.
    tracker       -- applied resource diff and stale resource collection.
    work_status   -- hub-side trigger for the tracker on status changes.
    applied_work  -- spoke-side periodic consistency monitor.
    finalizer     -- Work lifecycle state machine.
    predicates    -- watch event filters.
    manager       -- wires controllers, queues and watchers.
"""
