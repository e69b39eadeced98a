"""bundlehub - client-side registry for versioned content bundles."""
