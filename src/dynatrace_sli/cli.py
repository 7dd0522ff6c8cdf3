"""
Dynatrace SLI service CLI.

Commands:
    dynatrace-sli-service serve        Run the CloudEvent receiver
    dynatrace-sli-service retrieve     Process one get-sli event from a file
    dynatrace-sli-service credentials  Show which credentials a project resolves to
"""

import json

import click
from pydantic import ValidationError

from dynatrace_sli.config import get_config
from dynatrace_sli.credentials import CredentialResolver
from dynatrace_sli.errors import SLIServiceError, UnknownEventTypeError
from dynatrace_sli.events import CloudEvent, InvalidEventError, parse_structured
from dynatrace_sli.logger import configure_logging
from dynatrace_sli.models import RetrievalResult
from dynatrace_sli.notifier import ResultNotifier
from dynatrace_sli.secretstore import get_secret_store
from dynatrace_sli.service import SLIRetrievalService


class DryRunNotifier(ResultNotifier):
    """Builds the completion event without sending it."""

    last_event = None

    def emit(self, result: RetrievalResult, keptn_context: str) -> CloudEvent:
        self.last_event = self.build_event(result, keptn_context)
        return self.last_event


def _build_service(config, no_send: bool = False) -> SLIRetrievalService:
    store = get_secret_store(namespace=config.keptn_namespace, kubeconfig=config.kubeconfig)
    notifier = DryRunNotifier(config) if no_send else None
    return SLIRetrievalService(config, store, notifier=notifier)


@click.group()
@click.version_option(package_name="dynatrace-sli-service")
def main():
    """Dynatrace SLI service - retrieves SLIs from Dynatrace for Keptn."""
    try:
        config = get_config()
    except ValidationError as e:
        raise click.ClickException(f"Invalid configuration: {e}")
    configure_logging(config.log_level, config.log_format)


@main.command()
@click.option("--host", default="0.0.0.0", help="Host to bind to")
@click.option("--port", type=int, default=None, help="Port to listen on (default: RCV_PORT)")
@click.option("--path", default=None, help="Path to receive events on (default: RCV_PATH)")
@click.option("--debug", is_flag=True, help="Enable Flask debug mode")
def serve(host, port, path, debug):
    """Run the CloudEvent receiver."""
    from dynatrace_sli.server import WebhookServer

    config = get_config()
    server = WebhookServer(config, _build_service(config), host=host, port=port, path=path)
    server.run(debug=debug)


@main.command()
@click.argument("event_file", type=click.File("r"))
@click.option("--no-send", is_flag=True, help="Print the completion event instead of sending it")
def retrieve(event_file, no_send):
    """Process one get-sli CloudEvent read from EVENT_FILE ('-' for stdin)."""
    config = get_config()
    try:
        event = parse_structured(json.load(event_file))
    except (ValueError, InvalidEventError) as e:
        raise click.ClickException(f"Could not read event: {e}")

    service = _build_service(config, no_send=no_send)
    try:
        result = service.handle_event(event)
    except (UnknownEventTypeError, InvalidEventError) as e:
        raise click.ClickException(str(e))
    except SLIServiceError as e:
        raise click.ClickException(f"[{e.kind.value}] {e}")

    if result is None:
        click.echo(f"Ignored: event selects SLI provider other than '{config.sli_provider}'", err=True)
        return

    if no_send:
        click.echo(json.dumps(service.notifier.last_event.to_structured(), indent=2))
    else:
        click.echo(json.dumps(result.to_event_data(), indent=2))


@main.command()
@click.argument("project")
def credentials(project):
    """Show the Dynatrace endpoint PROJECT resolves to (the token is never printed)."""
    config = get_config()
    store = get_secret_store(namespace=config.keptn_namespace, kubeconfig=config.kubeconfig)
    try:
        creds = CredentialResolver(store).resolve(project)
    except SLIServiceError as e:
        raise click.ClickException(str(e))
    click.echo(creds.endpoint_url)


if __name__ == "__main__":
    main()
