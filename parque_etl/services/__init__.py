"""ETL services: row processing, scoring, job tracking, error feed and orchestration."""
