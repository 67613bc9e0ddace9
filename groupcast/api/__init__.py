"""HTTP routers exposing the command surface to the hosting process."""
