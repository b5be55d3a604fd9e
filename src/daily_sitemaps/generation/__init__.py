"""Detection, scheduling and execution of per-day sitemap generation."""
