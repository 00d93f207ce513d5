"""Run-scoped orchestration: shared context, execution state, coordinator and synthesis."""
