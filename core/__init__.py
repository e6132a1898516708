"""Generation layer core: types, cache, orchestration and adapters."""
