"""
Entry point of `sf-gulp` CLI.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path

import dotenv
from click.exceptions import BadParameter, MissingParameter
from pydantic import ValidationError
from typer import Argument, Context, Exit, Option, echo

from ...core import Gulp, GulpError, Session
from ...core.session import DEFAULT_API_VERSION
from ..config import Config, OrgConfig
from ._utils import (
    MainTyper,
    get_root_context,
    logger,
    lookup_param,
    run_async,
)

app = MainTyper(
    "sf-gulp",
    help="Mirror Salesforce org metadata into a local workspace",
)


@app.callback()
def main(
    ctx: Context,
    instance_url: str
    | None = Option(
        None,
        help="Org URL, e.g. https://mydomain.my.salesforce.com",
        envvar="SF_INSTANCE_URL",
    ),
    access_token: str
    | None = Option(
        None,
        help="OAuth access token or session id",
        envvar="SF_ACCESS_TOKEN",
    ),
    api_version: str
    | None = Option(
        None,
        help=f"API version, default {DEFAULT_API_VERSION}",
        envvar="SF_API_VERSION",
    ),
    org_name: str
    | None = Option(
        None,
        "--org",
        help="Org name as configured in .yaml",
        envvar="SF_GULP_ORG",
    ),
    config_file: Path = Option(
        "sf-gulp.yaml",
        help=".yaml file containing org info, only applicable with --org",
        envvar="SF_GULP_CONFIG_FILE",
        dir_okay=False,
    ),
    debug: bool = Option(False, "--debug", help="Enable debug logging"),
):
    if debug:
        logger.setLevel(logging.DEBUG)

    if org_name:
        root_context = RootContext.from_config(
            ctx=ctx, org_name=org_name, config_file=config_file
        )
    else:
        if not (instance_url and access_token):
            raise MissingParameter(
                message="either --instance-url and --access-token or --org must be provided",
                ctx=ctx,
                param_hint=["instance-url", "access-token", "org"],
                param_type="option",
            )

        try:
            org = OrgConfig(
                instance_url=instance_url,
                access_token=access_token,
                api_version=api_version or DEFAULT_API_VERSION,
            )
        except ValidationError as e:
            raise BadParameter(
                f"invalid connection info: {e}",
                ctx=ctx,
            )

        root_context = RootContext(ctx=ctx, org=org)

    ctx.obj = root_context


@app.command()
def check(ctx: Context):
    """
    Check org connection
    """
    session = get_root_context(ctx).create_session()

    versions = run_async(session.get_api_versions())

    logger.info(
        f"Connected to org '{session.instance_url}', using API version {session.api_version}"
    )
    logger.info(f"Available API versions: {', '.join(versions)}")

    if session.api_version not in versions:
        logger.warning(
            f"API version {session.api_version} not supported by org"
        )


@app.command()
def packages(
    ctx: Context,
    as_json: bool = Option(
        False, "--json", help="Output as JSON rather than log messages"
    ),
):
    """
    List org namespace and namespaces of installed packages
    """
    gulp = Gulp(get_root_context(ctx).create_session(), logger=logger)

    async def get_info():
        return await asyncio.gather(
            gulp.get_org_namespace(), gulp.get_org_packages()
        )

    org_namespace, installed = run_async(get_info())

    if as_json:
        echo(
            json.dumps(
                {
                    "namespace": org_namespace,
                    "packages": [p.model_dump() for p in installed],
                },
                indent=2,
            )
        )
        return

    logger.info(f"Org namespace: {org_namespace or '(none)'}")
    for package in installed:
        logger.info(f"Package: {package.namespace} ({package.name})")


@app.command()
def update(
    ctx: Context,
    workspace: Path = Argument(
        Path("."),
        help="Workspace containing the mirror",
        exists=True,
        file_okay=False,
    ),
    namespaces: list[str]
    | None = Option(
        None,
        "--namespace",
        help="Installed package namespace to mirror, may be repeated; defaults to namespaces configured for org",
    ),
    dry_run: bool = Option(
        False, "--dry-run", help="Only log changes to the mirror"
    ),
):
    """
    Refresh the mirror of the org's metadata
    """
    root_context = get_root_context(ctx)
    gulp = Gulp(root_context.create_session(), logger=logger)

    if namespaces is None or not len(namespaces):
        namespaces = root_context.org.namespaces

    try:
        stats = run_async(gulp.update(workspace, namespaces, dry_run=dry_run))
    except GulpError as e:
        logger.error(f"Mirror not updated: {e}")
        raise Exit(code=1)

    logger.info(
        f"{stats.file_count} files, {stats.write_count} written, {stats.delete_count} deleted"
    )


def run():
    dotenv.load_dotenv()
    app()


@dataclass(kw_only=True)
class RootContext:
    ctx: Context
    org: OrgConfig

    @classmethod
    def from_config(
        cls,
        *,
        ctx: Context,
        org_name: str,
        config_file: Path,
    ) -> RootContext:
        # ensure config file exists
        if not config_file.is_file():
            raise BadParameter(
                message=f"file does not exist: {config_file}",
                ctx=ctx,
                param=lookup_param(ctx, "config_file"),
            )

        # get config from file
        try:
            config = Config.load_yaml(config_file)
        except (ValueError, ValidationError) as e:
            raise BadParameter(
                f"failed to load config file '{config_file}': {e}",
                ctx=ctx,
                param=lookup_param(ctx, "config_file"),
            )

        # get org from config
        org = config.orgs.get(org_name)
        if not org:
            raise BadParameter(
                f"org '{org_name}' not found in '{config_file}'",
                ctx=ctx,
                param=lookup_param(ctx, "org_name"),
            )

        return RootContext(ctx=ctx, org=org)

    def create_session(self) -> Session:
        return self.org.create_session(logger=logger)


if __name__ == "__main__":
    run()
