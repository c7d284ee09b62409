"""abcli -- developer scaffolding CLI for the AppBuilder runtime.

Generates services, service handlers, API routes and mobile projects, manages
tenants, and drives the local docker stacks used for development and testing.
"""

__version__ = "0.4.0"
