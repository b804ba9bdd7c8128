"""Target page selection and readiness classification."""
