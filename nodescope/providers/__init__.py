"""External access: cluster API, kubelet config, network probes."""
