"""Browser-side plumbing: DevTools endpoints, processes, frames and page scripts."""
