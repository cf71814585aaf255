"""
AlertRule operator CLI.

Commands:
    alertrule-operator run        Run the operator under kopf
    alertrule-operator render     Render an AlertRule manifest offline
    alertrule-operator reconcile  Reconcile one AlertRule or Deployment against the cluster
"""

from __future__ import annotations

import os
import shutil
import subprocess
import sys
from typing import Optional

import click
import yaml

from alertrule_operator.backends import get_backend
from alertrule_operator.config import get_config
from alertrule_operator.errors import ReconcileError
from alertrule_operator.identity import ObjectKey
from alertrule_operator.logger import configure_logging
from alertrule_operator.reconcilers import AlertRuleReconciler, DeploymentReconciler
from alertrule_operator.renderer import RuleRenderer
from alertrule_operator.resources import ALERT_RULE
from alertrule_operator.store import MemoryStore, StoreType, get_store


@click.group()
@click.version_option(package_name="alertrule-operator")
def main():
    """AlertRule operator - Prometheus alerting rules from AlertRule resources."""
    pass


@main.command()
@click.option("--kubeconfig", envvar="KUBECONFIG", help="Path to kubeconfig")
@click.option("--namespace", default="", help="Namespace to watch (empty for all)")
def run(kubeconfig: Optional[str], namespace: str):
    """Run the operator locally."""
    namespace = namespace or get_config().kubernetes_namespace or ""
    click.echo("Starting AlertRule operator...")
    click.echo(f"  kubeconfig: {kubeconfig or 'in-cluster'}")
    click.echo(f"  namespace: {namespace or 'all'}")

    if not shutil.which("kopf"):
        raise click.ClickException(
            "kopf not found in PATH.\n"
            "It is installed with this package; activate the environment that has alertrule-operator."
        )

    cmd = ["kopf", "run", "-m", "alertrule_operator.operator", "--verbose"]
    if namespace:
        cmd.extend(["--namespace", namespace])
    else:
        cmd.append("--all-namespaces")

    click.echo(f"  Running: {' '.join(cmd)}")

    env = None
    if kubeconfig:
        env = dict(os.environ, KUBECONFIG=kubeconfig, ALERTRULE_OPERATOR_KUBECONFIG=kubeconfig)

    result = subprocess.run(cmd, env=env)
    if result.returncode != 0:
        raise click.ClickException(
            f"Operator exited with error.\n"
            f"Exit code: {result.returncode}\n"
            f"Command: {' '.join(cmd)}"
        )


@main.command()
@click.argument("manifest", type=click.File("r"))
@click.option(
    "--backend",
    type=click.Choice(["prometheusrule", "configmap"]),
    default=None,
    help="Artifact format (default: configured backend)",
)
def render(manifest, backend: Optional[str]):
    """Render an AlertRule manifest into its artifact and print it as YAML.

    Runs the real reconciler against an in-memory store, so the output is
    exactly what the operator would write.
    """
    config = get_config()
    try:
        alert_rule = yaml.safe_load(manifest)
    except yaml.YAMLError as e:
        raise click.ClickException(f"Cannot parse {manifest.name}: {e}")
    if not isinstance(alert_rule, dict) or alert_rule.get("kind") != ALERT_RULE.kind:
        raise click.ClickException(f"{manifest.name} is not an {ALERT_RULE.kind} manifest")

    metadata = alert_rule.get("metadata")
    if not isinstance(metadata, dict) or not metadata.get("name"):
        raise click.ClickException(f"{manifest.name} has no metadata.name")
    metadata.setdefault("namespace", "default")
    alert_rule.pop("status", None)

    store = MemoryStore()
    stored = store.create(ALERT_RULE, alert_rule)
    artifact_backend = get_backend(backend or config.artifact_backend, RuleRenderer.from_config(config))
    reconciler = AlertRuleReconciler(store, artifact_backend)
    key = ObjectKey.of(stored)

    try:
        reconciler.reconcile(key)
    except ReconcileError as e:
        raise click.ClickException(str(e))

    artifact = store.get(artifact_backend.kind, key.namespace, key.name)
    metadata = artifact["metadata"]
    for field in ("uid", "resourceVersion", "generation", "creationTimestamp"):
        metadata.pop(field, None)
    click.echo(yaml.dump(artifact, sort_keys=False), nl=False)


@main.command()
@click.argument("resource", type=click.Choice(["alertrule", "deployment"]))
@click.argument("target")
@click.option("--kubeconfig", envvar="KUBECONFIG", help="Path to kubeconfig")
def reconcile(resource: str, target: str, kubeconfig: Optional[str]):
    """Reconcile one resource (namespace/name) against the cluster."""
    config = get_config()
    configure_logging(config.log_level, "text")

    try:
        key = ObjectKey.parse(target)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="TARGET")

    store = get_store(StoreType.KUBERNETES, kubeconfig=kubeconfig or config.kubeconfig)
    if resource == "alertrule":
        reconciler = AlertRuleReconciler(
            store, get_backend(config.artifact_backend, RuleRenderer.from_config(config))
        )
    else:
        reconciler = DeploymentReconciler(store, config)

    try:
        result = reconciler.reconcile(key)
    except ReconcileError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"{resource} {key}: {result.action.value}")
    if result.fingerprint:
        click.echo(f"  fingerprint: {result.fingerprint}")


if __name__ == "__main__":
    main()
