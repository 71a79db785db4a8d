import sys
from pathlib import Path

import typer
import yaml
from typing_extensions import Annotated

from dotenv import load_dotenv, find_dotenv

from greeting_operator.cli.render import render_manifests

load_dotenv(find_dotenv(usecwd=True))

app = typer.Typer(
    help="Greeting operator: reconciles GreetingService resources into Deployments and Services",
    add_completion=False,
)


@app.command("operator")
def run_operator(
    namespace: Annotated[
        str, typer.Option("-n", "--namespace", help="Watch a single namespace")
    ] = None,
):
    """Run the Kubernetes operator (connects to cluster)."""
    from greeting_operator.main import main

    main(namespace=namespace)


@app.command("generate-crds")
def generate_crds(
    output: Annotated[
        str, typer.Option("-o", "--output", help="Output directory")
    ] = "crds/generated",
    force: Annotated[bool, typer.Option("--force", help="Force regeneration")] = False,
    validate: Annotated[
        bool, typer.Option("--validate", help="Validate generated CRDs")
    ] = False,
):
    """Generate CRD YAML files from pydantic models."""
    from greeting_operator.crd.generator import GreetingCRDManager

    output_dir = Path(output)
    manager = GreetingCRDManager(output_dir=output_dir)

    try:
        success = manager.generate_all_crds(force=force)
    except (OSError, ValueError) as e:
        typer.echo(f"Failed to generate CRDs: {e}", err=True)
        sys.exit(1)

    if not success:
        typer.echo("No CRDs generated (models unchanged)")
        return

    typer.echo(f"CRDs generated successfully in {output_dir}")

    if validate:
        if manager.validate_generated_crds():
            typer.echo("CRD validation passed")
        else:
            typer.echo("CRD validation failed", err=True)
            sys.exit(1)


@app.command("validate-models")
def validate_models():
    """Validate CRD models without generating files."""
    from greeting_operator.crd.generator import GreetingCRDManager

    manager = GreetingCRDManager()
    try:
        crds = manager.get_crds_as_dict()
    except ValueError as e:
        typer.echo(f"Model validation failed: {e}", err=True)
        raise typer.Exit(1)

    models = manager.registry.get_all_models()
    invalid = [
        key
        for key, info in models.items()
        if not manager.registry.validate_model_schema(info["model"])
    ]
    if invalid:
        typer.echo(f"Invalid model schemas: {', '.join(invalid)}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Validated {len(models)} CRD models")
    for key in models:
        typer.echo(f"  - {key}")
    typer.echo(f"Generated {len(crds)} CRDs in memory")


@app.command("render")
def render(
    manifest: Annotated[
        Path, typer.Argument(help="YAML file containing GreetingService objects")
    ],
    namespace: Annotated[
        str, typer.Option("-n", "--namespace", help="Namespace for objects without one")
    ] = "default",
):
    """Print the Deployment and Service the operator would apply."""
    from greeting_operator.errors import SpecValidationError

    try:
        with open(manifest) as f:
            documents = [doc for doc in yaml.safe_load_all(f) if doc]
    except (OSError, yaml.YAMLError) as e:
        typer.echo(f"Could not read {manifest}: {e}", err=True)
        raise typer.Exit(1)

    try:
        rendered = render_manifests(documents, namespace)
    except SpecValidationError as e:
        typer.echo(f"Invalid GreetingService: {e}", err=True)
        raise typer.Exit(1)

    if not rendered:
        typer.echo(f"No GreetingService objects found in {manifest}", err=True)
        raise typer.Exit(1)

    typer.echo(yaml.safe_dump_all(rendered, sort_keys=False, default_flow_style=False), nl=False)


@app.command("reconcile")
def reconcile(
    name: Annotated[str, typer.Argument(help="GreetingService name")],
    namespace: Annotated[
        str, typer.Option("-n", "--namespace", help="GreetingService namespace")
    ] = "default",
):
    """Reconcile one GreetingService once against the current kube context."""
    from greeting_operator.config import OperatorSettings
    from greeting_operator.errors import StoreError
    from greeting_operator.events import ReconcileKey
    from greeting_operator.reconcile import Reconciler
    from greeting_operator.store.kube import KubernetesStore

    settings = OperatorSettings.from_env()
    store = KubernetesStore.from_config(
        field_manager=settings.field_manager, force_apply=settings.force_apply
    )
    key = ReconcileKey(namespace, name)

    try:
        result = Reconciler(store, settings).reconcile(key)
    except StoreError as e:
        typer.echo(f"Reconcile of {key} failed: {e}", err=True)
        raise typer.Exit(1)
    finally:
        store.close()

    typer.echo(f"{key}: {result.state.value}")
