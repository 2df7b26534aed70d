# Ensure tests is a package for pytest discovery
