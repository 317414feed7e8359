"""zfs-local-sync: snapshot a ZFS pool and replicate it to another local pool."""
