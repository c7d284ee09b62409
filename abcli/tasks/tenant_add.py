"""``ab tenant add``: create a tenant through a running API stack."""

from __future__ import annotations

import secrets

import httpx

from abcli.commands.base import Command
from abcli.env import read_environment, write_environment
from abcli.options import Options
from abcli.pipeline import AbCliError
from abcli.prompts import Question, ask, not_empty
from abcli.utils import port_in_use, print_step

TENANT_FIELDS = ("key", "title", "authType", "username", "password", "email", "url")
LOGIN_FIELDS = ("loginTenant", "loginEmail", "loginPassword")

# .env keys remembering the login answers between runs.
ENV_DEFAULTS = {
    "port": "AB_API_PORT",
    "loginTenant": "AB_LOGIN_TENANT",
    "loginEmail": "AB_LOGIN_EMAIL",
}


class TenantError(AbCliError):
    """The tenant API rejected a request."""

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None) -> None:
        self.status_code = status_code
        self.code = code
        super().__init__(message)


def _error_code(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("code") or (body.get("data") or {}).get("code")
    return None


class TenantAddTask(Command):
    name = "tenantAdd"
    description_short = "add a new tenant to the system."
    usage = """
  usage: $ ab tenant add

  Add a new Tenant to our system.

  Options:
    --key, --title, --authType, --url        : the tenant definition
    --username, --password, --email          : the tenant administrator
    --port                                   : the port the API stack listens on
    --loginTenant, --loginEmail, --loginPassword : the account used to log in
"""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.transport = transport

    def steps(self):
        return [
            self.check_dependencies,
            self.load_defaults,
            self.questions,
            self.check_port,
            self.user_login,
            self.trigger_api,
            self.save_defaults,
        ]

    async def load_defaults(self, options: Options) -> None:
        env = read_environment()
        options["envDefaults"] = {key: env.get(var) for key, var in ENV_DEFAULTS.items()}

    def _default(self, key: str, fallback):
        return lambda o: (o.get("envDefaults") or {}).get(key) or fallback

    async def questions(self, options: Options) -> None:
        await ask(
            [
                Question(
                    "key",
                    "Tenant Key",
                    validate=lambda v: bool(v) and " " not in v
                    or "Keep it user understandable and no spaces.",
                ),
                Question(
                    "title",
                    "Enter Tenant Name",
                    validate=lambda v: not_empty(v) is True or "Enter something here.",
                ),
                Question("authType", "What kind of authentication method", kind="list", choices=["login"], default="login"),
                Question("url", "Enter Tenant URL", default=""),
                Question("username", "Enter the Tenant Administrator Username", default="admin"),
                Question(
                    "password",
                    "Enter the Tenant Administrator password",
                    default=lambda _: secrets.token_urlsafe(16),
                ),
                Question("email", "Enter the Tenant Administrator email", default="neo@thematrix.com"),
                Question(
                    "port",
                    "Enter the port your API stack is listening on",
                    default=self._default("port", "8080"),
                    validate=lambda v: str(v).isdigit() or "enter a port number",
                ),
                Question("loginTenant", "Enter the LoginTenant key", default=self._default("loginTenant", "admin")),
                Question("loginEmail", "Enter the LoginUserEmail", default=self._default("loginEmail", "neo@thematrix.net")),
                Question("loginPassword", "Enter the LoginPassword", kind="password"),
            ],
            options,
        )

    def base_url(self, options: Options) -> str:
        return f"http://localhost:{options['port']}"

    async def check_port(self, options: Options) -> None:
        if not await port_in_use(int(options["port"])):
            raise TenantError(
                f"nothing is listening on port {options['port']}; is the API stack running?"
            )

    async def user_login(self, options: Options) -> None:
        """Log in and keep the session cookie; re-ask the credentials when rejected."""
        while True:
            async with httpx.AsyncClient(transport=self.transport, timeout=30.0) as client:
                response = await client.post(
                    f"{self.base_url(options)}/auth/login",
                    json={
                        "tenant": options["loginTenant"],
                        "email": options["loginEmail"],
                        "password": options["loginPassword"],
                    },
                )
            if response.is_success:
                cookie = response.headers.get("set-cookie")
                if cookie:
                    options["cookie"] = cookie.split(";")[0]
                print_step("... logged in")
                return

            code = _error_code(response)
            if code != "EINVALIDLOGIN":
                raise TenantError(
                    f"login failed ({response.status_code}): {response.text}",
                    status_code=response.status_code,
                    code=code,
                )
            print_step("... invalid login, try again")
            for key in LOGIN_FIELDS:
                options.pop(key, None)
            await self.questions(options)

    async def trigger_api(self, options: Options) -> None:
        headers = {"Cookie": options["cookie"]} if options.get("cookie") else {}
        data = {key: options.get(key) for key in TENANT_FIELDS}
        async with httpx.AsyncClient(transport=self.transport, timeout=30.0) as client:
            response = await client.post(f"{self.base_url(options)}/tenant/add", json=data, headers=headers)
        if not response.is_success:
            raise TenantError(
                f"unable to add tenant {options['key']} ({response.status_code}): {response.text}",
                status_code=response.status_code,
                code=_error_code(response),
            )
        print_step(f"... tenant {options['key']} added")

    async def save_defaults(self, options: Options) -> None:
        write_environment({var: options.get(key) for key, var in ENV_DEFAULTS.items()})


tenant_add = TenantAddTask()
