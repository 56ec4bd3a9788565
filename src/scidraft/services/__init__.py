"""Service helpers shared by the routers."""
