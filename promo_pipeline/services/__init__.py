"""Pipeline services: persistence, polling, orchestration and compositing."""
