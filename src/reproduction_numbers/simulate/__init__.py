"""SEIR ground truth, transmission schedules and serial intervals."""
