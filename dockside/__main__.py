from dockside.cli import main

raise SystemExit(main())
