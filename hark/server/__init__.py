"""HTTP server exposing the agent to displays and front ends."""
