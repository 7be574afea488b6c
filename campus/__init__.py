"""Campus volunteering program records backend."""
