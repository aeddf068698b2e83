"""Business services for the CSV import pipeline."""
