from backuphook.cli import main

raise SystemExit(main())
