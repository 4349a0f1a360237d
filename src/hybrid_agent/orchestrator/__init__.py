"""Task orchestration core: todo scheduling, delegation, escalation and tier coordination.

The coordinator runs each task on the cheap local tier first and asks the
escalation policy whether the outcome is good enough. Failures, timeouts and
low-quality results move the task to the escalation tier. Every decision is
annotated on the returned result and folded into the policy metrics.
"""
