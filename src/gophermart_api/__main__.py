import argparse
import os

import uvicorn

from gophermart_api.core.settings import Settings, settings

_FLAG_ENV = {
    "run_address": "RUN_ADDRESS",
    "accrual_system_address": "ACCRUAL_SYSTEM_ADDRESS",
    "database_url": "DATABASE_URL",
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Gophermart loyalty service")
    parser.add_argument("-a", dest="run_address", help="Address to listen on, host:port")
    parser.add_argument("-r", dest="accrual_system_address", help="Base URL of the accrual system")
    parser.add_argument("-d", dest="database_url", help="SQLAlchemy async database URL")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    return parser.parse_args(argv)


def apply_overrides(args: argparse.Namespace) -> None:
    """Flags win over the environment.

    Exported as environment variables too, so reload subprocesses see them.
    Must run before the app modules create the engine.
    """

    overridden = []
    for field_name, env_name in _FLAG_ENV.items():
        value = getattr(args, field_name)
        if value:
            os.environ[env_name] = value
            overridden.append(field_name)
    if not overridden:
        return
    fresh = Settings()  # type: ignore[call-arg]
    for field_name in overridden:
        setattr(settings, field_name, getattr(fresh, field_name))


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    apply_overrides(args)
    uvicorn.run(
        "gophermart_api.app:create_app",
        factory=True,
        host=settings.run_host,
        port=settings.run_port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
