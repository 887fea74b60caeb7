from sheetrows.cli.main import main

raise SystemExit(main())
