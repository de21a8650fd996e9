"""Dataset build orchestration and archive packaging."""
