import logging

LOG = logging.getLogger(__name__)

# Pods in these namespaces are never modified.
IGNORED_NAMESPACES = frozenset({"kube-system", "kube-public"})


def is_eligible(namespace: str | None, excluded_namespaces=IGNORED_NAMESPACES) -> bool:
    if namespace in excluded_namespaces:
        LOG.info("skipping mutation for pod in excluded namespace %s", namespace)
        return False

    return True
