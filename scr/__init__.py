"""Simulation and Bayesian estimation for spatial capture-recapture models."""
